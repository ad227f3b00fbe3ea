"""
Inventory: medication catalogue and lots.

Business Rules Enforced:
- Medication.sku unique
- Lot number unique per medication
- quantity_total >= 1
- 0 <= quantity_available <= quantity_total
- alert_window_days >= 1

Generated manually.
"""
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Medication',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sku', models.CharField(max_length=50, unique=True, verbose_name='SKU')),
                ('commercial_name', models.CharField(max_length=200, verbose_name='Commercial Name')),
                ('active_ingredient', models.CharField(help_text='Normalized active ingredient used for allergy cross-checks', max_length=200, verbose_name='Active Ingredient')),
                ('dosage', models.CharField(help_text='e.g. 500mg, 10mg/ml', max_length=50, verbose_name='Dosage')),
                ('pharmaceutical_form', models.CharField(
                    choices=[
                        ('tablet', 'Tablet'),
                        ('capsule', 'Capsule'),
                        ('oral_solution', 'Oral Solution'),
                        ('drops', 'Drops'),
                        ('syrup', 'Syrup'),
                        ('ointment', 'Ointment'),
                        ('cream', 'Cream'),
                        ('injectable', 'Injectable'),
                        ('inhaler', 'Inhaler'),
                        ('other', 'Other'),
                    ],
                    default='tablet',
                    max_length=20,
                    verbose_name='Pharmaceutical Form'
                )),
                ('unit_measure', models.CharField(
                    choices=[
                        ('unit', 'Unit'),
                        ('ml', 'Millilitre'),
                        ('mg', 'Milligram'),
                        ('g', 'Gram'),
                        ('drop', 'Drop'),
                    ],
                    default='unit',
                    max_length=10,
                    verbose_name='Unit Measure'
                )),
                ('minimum_stock_qty', models.PositiveIntegerField(default=10, verbose_name='Minimum Stock')),
                ('is_controlled', models.BooleanField(default=False, verbose_name='Controlled Substance')),
                ('requires_prescription', models.BooleanField(default=False, verbose_name='Requires Prescription')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
            ],
            options={
                'verbose_name': 'Medication',
                'verbose_name_plural': 'Medications',
                'db_table': 'inventory_medications',
                'ordering': ['commercial_name'],
                'indexes': [
                    models.Index(fields=['active_ingredient'], name='idx_med_ingredient'),
                    models.Index(fields=['is_active'], name='idx_med_active'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryLot',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('lot_number', models.CharField(max_length=50, verbose_name='Lot Number')),
                ('manufacturer', models.CharField(blank=True, default='', max_length=150, verbose_name='Manufacturer')),
                ('quantity_total', models.PositiveIntegerField(verbose_name='Quantity Received')),
                ('quantity_available', models.PositiveIntegerField(verbose_name='Quantity Available')),
                ('expiry_date', models.DateField(verbose_name='Expiry Date')),
                ('alert_window_days', models.PositiveIntegerField(default=30, help_text='Warn this many days before expiry', verbose_name='Expiry Alert Window (days)')),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Received At')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('medication', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='lots', to='inventory.medication', verbose_name='Medication')),
                ('received_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='received_lots', to=settings.AUTH_USER_MODEL, verbose_name='Received By')),
            ],
            options={
                'verbose_name': 'Inventory Lot',
                'verbose_name_plural': 'Inventory Lots',
                'db_table': 'inventory_lots',
                'ordering': ['expiry_date', 'received_at'],
                'indexes': [
                    models.Index(fields=['medication', 'expiry_date'], name='idx_lot_med_expiry'),
                    models.Index(fields=['expiry_date'], name='idx_lot_expiry'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('medication', 'lot_number'), name='unique_lot_per_medication'),
                    models.CheckConstraint(condition=models.Q(('quantity_total__gte', 1)), name='lot_quantity_total_positive'),
                    models.CheckConstraint(condition=models.Q(('quantity_available__gte', 0), ('quantity_available__lte', models.F('quantity_total'))), name='lot_quantity_available_in_range'),
                    models.CheckConstraint(condition=models.Q(('alert_window_days__gte', 1)), name='lot_alert_window_positive'),
                ],
            },
        ),
    ]
