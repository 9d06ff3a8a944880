import django.db.models.functions.text
from django.db import migrations
from django.db import models


def lowercase_emails(apps, schema_editor):
    WaitlistEntry = apps.get_model("waitlist", "WaitlistEntry")
    for entry in WaitlistEntry.objects.all().iterator():
        lowered = entry.email.strip().lower()
        if lowered != entry.email:
            entry.email = lowered
            entry.save(update_fields=["email"])


class Migration(migrations.Migration):
    dependencies = [
        ("waitlist", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(lowercase_emails, migrations.RunPython.noop),
        migrations.AddConstraint(
            model_name="waitlistentry",
            constraint=models.UniqueConstraint(
                django.db.models.functions.text.Lower("email"),
                name="waitlist_entry_email_ci_unique",
            ),
        ),
    ]
