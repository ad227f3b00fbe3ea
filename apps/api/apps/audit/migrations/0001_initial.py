# Generated migration for audit app - append-only audit ledger

from django.core.serializers.json import DjangoJSONEncoder
from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='AuditEntry',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('actor_id', models.UUIDField(blank=True, db_index=True, help_text='Operator who performed the action (no FK: survives user deletion)', null=True)),
                ('actor_name', models.CharField(blank=True, default='', max_length=255)),
                ('action_kind', models.CharField(
                    choices=[
                        ('DISPENSE_ATTEMPT', 'Dispense Attempt'),
                        ('DISPENSE_SUCCESS', 'Dispense Success'),
                        ('DISPENSE_BLOCKED_ALLERGY', 'Dispense Blocked (Allergy)'),
                        ('STOCK_UPDATE', 'Stock Update'),
                        ('ALLERGY_ADDED', 'Allergy Added'),
                        ('ALLERGY_REMOVED', 'Allergy Removed'),
                        ('EPISODE_OPENED', 'Episode Opened'),
                        ('EPISODE_CLOSED', 'Episode Closed'),
                        ('RECORD_VIEW', 'Record View'),
                    ],
                    max_length=40
                )),
                ('target_table', models.CharField(blank=True, default='', max_length=64)),
                ('target_id', models.CharField(blank=True, default='', max_length=64)),
                ('payload', models.JSONField(blank=True, default=dict, encoder=DjangoJSONEncoder)),
                ('request_id', models.CharField(blank=True, default='', max_length=64)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True, default='')),
                ('occurred_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'verbose_name': 'Audit Entry',
                'verbose_name_plural': 'Audit Entries',
                'db_table': 'audit_entry',
                'ordering': ['id'],
                'indexes': [
                    models.Index(fields=['target_table', 'target_id'], name='idx_audit_target'),
                    models.Index(fields=['action_kind', 'occurred_at'], name='idx_audit_action_time'),
                ],
            },
        ),
    ]
