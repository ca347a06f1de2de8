"""
Add celery-beat schedules for escrow release and wallet reconciliation.

Due escrow is released once a day at 02:00 UTC; wallet balances are
checked against the ledger afterwards at 03:30 UTC.
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "settlement-release-due-escrow",
        "task": "settlement.workers.fund_release_scheduler.process_due_fund_releases",
        "hour": "2",
        "minute": "0",
        "description": (
            "Finds delivered sub-orders whose return window has elapsed "
            "and queues an escrow release for each."
        ),
    },
    {
        "name": "settlement-reconcile-wallets",
        "task": "settlement.workers.reconciliation.reconcile_wallet_balances",
        "hour": "3",
        "minute": "30",
        "description": "Compares every wallet balance with its ledger sum.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            minute=entry["minute"],
            hour=entry["hour"],
            day_of_week="*",
            day_of_month="*",
            month_of_year="*",
            timezone="UTC",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "crontab": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
