# Generated migration for UsageRecord model

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='UsageRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('owner_user_id', models.CharField(help_text='User ID (sub claim)', max_length=255)),
                ('date', models.DateField(help_text='Server-local calendar date')),
                ('questions_used', models.PositiveIntegerField(default=0)),
            ],
            options={
                'db_table': 'rag_usage',
            },
        ),
        migrations.AddConstraint(
            model_name='usagerecord',
            constraint=models.UniqueConstraint(fields=('owner_user_id', 'date'), name='unique_usage_per_user_day'),
        ),
    ]
