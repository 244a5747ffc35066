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
    ]

    operations = [
        migrations.CreateModel(
            name='MaterialReceipt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('date', models.DateField()),
                ('receipt_number', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('vehicle_number', models.CharField(max_length=32)),
                ('material_name', models.CharField(blank=True, default='', max_length=160)),
                ('filled_weight', models.DecimalField(decimal_places=3, max_digits=14)),
                ('empty_weight', models.DecimalField(decimal_places=3, max_digits=14)),
                ('net_weight', models.DecimalField(decimal_places=3, max_digits=14)),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=14)),
                ('vendor_name', models.CharField(blank=True, default='', max_length=200)),
                ('site_name', models.CharField(blank=True, default='', max_length=160)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='receipts', to='materials.materialmaster')),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='material_receipts', to='organizations.organization')),
                ('site', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='material_receipts', to='sites.site')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('vendor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='receipts', to='vendors.vendor')),
            ],
            options={
                'ordering': ['-date', '-created_at', '-id'],
                'indexes': [models.Index(fields=['organization', 'material', 'site'], name='receipt_org_mat_site_idx'), models.Index(fields=['organization', 'vendor'], name='receipt_org_vendor_idx'), models.Index(fields=['organization', 'date'], name='receipt_org_date_idx')],
            },
        ),
    ]
