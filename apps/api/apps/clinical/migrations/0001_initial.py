"""
Clinical: patients, allergy records, episodes and dispensation records.

Business Rules Enforced:
- One allergy record per (patient, normalized ingredient)
- Dispensation quantity >= 1
- At most one dispensation per episode
- Episodes, lots and operators referenced by dispensations cannot be deleted

Generated manually.
"""
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('inventory', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('display_name', models.CharField(max_length=255)),
                ('registration_code', models.CharField(blank=True, help_text='School registration number', max_length=50, null=True, unique=True)),
                ('birth_date', models.DateField(blank=True, null=True)),
                ('grade', models.CharField(blank=True, default='', max_length=30)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
                'ordering': ['display_name'],
            },
        ),
        migrations.CreateModel(
            name='AllergyRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('normalized_ingredient', models.CharField(max_length=200)),
                ('display_allergen_name', models.CharField(max_length=200)),
                ('severity', models.CharField(
                    choices=[
                        ('mild', 'Mild'),
                        ('moderate', 'Moderate'),
                        ('severe', 'Severe'),
                        ('anaphylactic', 'Anaphylactic'),
                    ],
                    max_length=20
                )),
                ('reaction_note', models.TextField(blank=True, help_text='Reaction previously observed', null=True)),
                ('diagnosed_by', models.CharField(blank=True, max_length=150, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='registered_allergies', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='allergies', to='clinical.patient')),
            ],
            options={
                'verbose_name': 'Allergy Record',
                'verbose_name_plural': 'Allergy Records',
                'db_table': 'allergy_record',
                'ordering': ['created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('patient', 'normalized_ingredient'), name='unique_allergy_per_patient_ingredient'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ClinicalEpisode',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(
                    choices=[
                        ('open', 'Open'),
                        ('dispensed', 'Medication Dispensed'),
                        ('referred', 'Referred'),
                        ('closed', 'Closed'),
                        ('blocked_allergy', 'Blocked (Allergy)'),
                    ],
                    default='open',
                    max_length=20
                )),
                ('symptoms', models.TextField()),
                ('clinical_notes', models.TextField(blank=True, null=True)),
                ('temperature_c', models.DecimalField(blank=True, decimal_places=1, max_digits=4, null=True)),
                ('blood_pressure', models.CharField(blank=True, max_length=20, null=True)),
                ('referral_destination', models.CharField(blank=True, max_length=200, null=True)),
                ('opened_at', models.DateTimeField(auto_now_add=True)),
                ('closed_at', models.DateTimeField(blank=True, null=True)),
                ('opened_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='opened_episodes', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='episodes', to='clinical.patient')),
            ],
            options={
                'verbose_name': 'Clinical Episode',
                'verbose_name_plural': 'Clinical Episodes',
                'db_table': 'clinical_episode',
                'ordering': ['-opened_at'],
                'indexes': [
                    models.Index(fields=['patient', 'opened_at'], name='idx_episode_patient_opened'),
                    models.Index(fields=['status'], name='idx_episode_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DispensationRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField()),
                ('dosage_instructions', models.TextField()),
                ('allergy_check_passed', models.BooleanField(default=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('dispensed_at', models.DateTimeField(auto_now_add=True)),
                ('dispensed_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='dispensations', to=settings.AUTH_USER_MODEL)),
                ('episode', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='dispensations', to='clinical.clinicalepisode')),
                ('lot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='dispensations', to='inventory.inventorylot')),
            ],
            options={
                'verbose_name': 'Dispensation Record',
                'verbose_name_plural': 'Dispensation Records',
                'db_table': 'dispensation_record',
                'ordering': ['-dispensed_at'],
                'indexes': [
                    models.Index(fields=['lot', 'dispensed_at'], name='idx_dispensation_lot'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 1)), name='dispensation_quantity_positive'),
                    models.UniqueConstraint(fields=('episode',), name='unique_dispensation_per_episode'),
                ],
            },
        ),
    ]
