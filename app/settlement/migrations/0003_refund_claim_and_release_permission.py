from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0002_add_settlement_beat_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="suborder",
            name="escrow_refund_attempted_at",
            field=models.DateTimeField(
                blank=True,
                help_text="Set before the refund request is sent; cleared only when "
                "the gateway certainly did not process it",
                null=True,
            ),
        ),
        migrations.AlterModelOptions(
            name="suborder",
            options={
                "ordering": ["-created_at"],
                "permissions": [
                    ("approve_refund", "Can approve escrow refunds"),
                    ("confirm_delivery", "Can confirm delivery on a buyer's behalf"),
                    ("release_escrow", "Can release held escrow to the store wallet"),
                    ("view_refund_queue", "Can view the refund queue"),
                ],
                "verbose_name": "Sub-order",
                "verbose_name_plural": "Sub-orders",
            },
        ),
        migrations.AlterField(
            model_name="fundrelease",
            name="trigger",
            field=models.CharField(
                blank=True,
                choices=[
                    ("time_elapsed", "Return Window Elapsed"),
                    ("delivery_confirmed", "Delivery Confirmed"),
                    ("auto_confirmed_delivery", "Auto Confirmed Delivery"),
                    ("admin_approved", "Admin Approved"),
                ],
                default="",
                max_length=30,
            ),
        ),
    ]
