from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.RemoveField(model_name="ordermodel", name="internal_id"),
        migrations.AlterModelOptions(
            name="ordermodel",
            options={"ordering": ["-created_at"]},
        ),
        migrations.AddField(
            model_name="ordermodel",
            name="payment_method_id",
            field=models.CharField(blank=True, default="", max_length=255),
        ),
        migrations.AddField(
            model_name="ordermodel",
            name="captured_cents",
            field=models.PositiveIntegerField(default=0),
        ),
    ]
