import uuid

import django.core.validators
import django.utils.timezone
from django.db import migrations, models

import scraper.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Brand",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("logo_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("page_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "brands",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="DiscoveryJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("kind", models.CharField(choices=[("brand", "Brand Pages"), ("sitemap", "Full Sitemap")], max_length=20)),
                ("params", models.JSONField(blank=True, default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("urls_found", models.IntegerField(default=0)),
                ("urls_queued", models.IntegerField(default=0)),
                ("urls_skipped", models.IntegerField(default=0)),
                ("results_summary", models.JSONField(blank=True, default=dict)),
                ("error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "discovery_jobs",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="discovery_j_status_5b1c8e_idx")],
            },
        ),
        migrations.CreateModel(
            name="Perfume",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("brand", models.CharField(db_index=True, max_length=255)),
                ("source_url", models.URLField(blank=True, max_length=2000, null=True, unique=True)),
                ("year", models.IntegerField(blank=True, null=True)),
                ("perfumer", models.TextField(blank=True, null=True)),
                ("perfumer_image_url", models.URLField(blank=True, max_length=2000, null=True)),
                (
                    "gender",
                    models.CharField(
                        choices=[("masculine", "Masculine"), ("feminine", "Feminine"), ("unisex", "Unisex")],
                        db_index=True,
                        default="unisex",
                        max_length=20,
                    ),
                ),
                ("concentration", models.CharField(blank=True, max_length=100, null=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("image_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("notes", models.JSONField(blank=True, default=scraper.models.empty_notes)),
                ("accords", models.JSONField(blank=True, default=list)),
                (
                    "rating",
                    models.DecimalField(
                        blank=True,
                        decimal_places=1,
                        help_text="Average rating on a 0-5 scale",
                        max_digits=3,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(0),
                            django.core.validators.MaxValueValidator(5),
                        ],
                    ),
                ),
                ("longevity", models.JSONField(blank=True, null=True)),
                ("sillage", models.JSONField(blank=True, null=True)),
                (
                    "season_usage",
                    models.JSONField(
                        blank=True,
                        help_text="winter/spring/summer/autumn/day/night scores, 0-100",
                        null=True,
                    ),
                ),
                ("scraped_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "perfumes",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["brand", "name"], name="perfumes_brand_5d4a1e_idx"),
                    models.Index(fields=["created_at"], name="perfumes_created_8f2c3b_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScrapeQueueEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(max_length=2000, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("done", "Done"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("retry_count", models.IntegerField(default=0)),
                ("error_message", models.TextField(blank=True, default="")),
                (
                    "force_rescrape",
                    models.BooleanField(
                        default=False,
                        help_text="Scrape even if the catalog already holds this URL",
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "scrape_queue",
                "ordering": ["created_at", "id"],
                "verbose_name_plural": "scrape queue entries",
                "indexes": [models.Index(fields=["status", "created_at"], name="scrape_queu_status_a7e2d4_idx")],
            },
        ),
    ]
