from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CodeSequence",
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
                ("doc_type", models.CharField(max_length=32)),
                ("period_key", models.CharField(max_length=7)),
                ("next_value", models.PositiveIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "tradeflow_code_sequences",
                "ordering": ["doc_type", "period_key"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("doc_type", "period_key"),
                        name="uq_code_sequence_period",
                    ),
                ],
            },
        ),
    ]
