from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('organizations', '0001_initial'),
        ('materials', '0001_initial'),
        ('sites', '0001_initial'),
        ('vendors', '0001_initial'),
        ('receipts', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='MaterialPurchase',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('material_name', models.CharField(max_length=160)),
                ('site_name', models.CharField(max_length=160)),
                ('vendor_name', models.CharField(blank=True, default='', max_length=200)),
                ('invoice_number', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('receipt_number', models.CharField(blank=True, default='', max_length=64)),
                ('purchase_date', models.DateField(blank=True, null=True)),
                ('unit', models.CharField(blank=True, default='', max_length=32)),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=14)),
                ('unit_rate', models.DecimalField(decimal_places=2, max_digits=12)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('filled_weight', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('empty_weight', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('net_weight', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('weight_unit', models.CharField(blank=True, default='', max_length=16)),
                ('consumed_quantity', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('remaining_quantity', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('receipt_rates', models.JSONField(blank=True, default=dict)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('linked_receipt', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='receipts.materialreceipt')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to='materials.materialmaster')),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='material_purchases', to='organizations.organization')),
                ('site', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='material_purchases', to='sites.site')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('vendor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='material_purchases', to='vendors.vendor')),
            ],
            options={
                'ordering': ['-purchase_date', '-id'],
                'indexes': [models.Index(fields=['organization', 'material'], name='purchase_org_material_idx'), models.Index(fields=['organization', 'purchase_date'], name='purchase_org_date_idx')],
            },
        ),
    ]
