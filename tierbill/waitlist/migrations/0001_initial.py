import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="WaitlistEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        help_text="Email address the person joined the waitlist with.",
                        max_length=254,
                        unique=True,
                    ),
                ),
                (
                    "waitlist_position",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Signup rank, 1 = first. Null until a position is assigned.",
                        null=True,
                    ),
                ),
                (
                    "licenses",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Bar license numbers given at signup.",
                    ),
                ),
            ],
            options={
                "ordering": ["waitlist_position"],
                "verbose_name_plural": "waitlist entries",
            },
        ),
    ]
