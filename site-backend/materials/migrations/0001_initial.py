from decimal import Decimal
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('organizations', '0001_initial'),
        ('sites', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='MaterialMaster',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=160)),
                ('category', models.CharField(choices=[('Cement', 'Cement'), ('Steel', 'Steel'), ('Concrete', 'Concrete'), ('Bricks', 'Bricks'), ('Sand', 'Sand'), ('Aggregate', 'Aggregate'), ('Timber', 'Timber'), ('Electrical', 'Electrical'), ('Plumbing', 'Plumbing'), ('Paint', 'Paint'), ('Other', 'Other')], default='Other', max_length=32)),
                ('unit', models.CharField(help_text='Unit of measure, e.g. bags, kg, m3', max_length=32)),
                ('standard_rate', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('hsn', models.CharField(blank=True, default='', max_length=32)),
                ('tax_rate', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=5)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14)),
                ('consumed_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('opening_balance', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('stock_version', models.PositiveIntegerField(default=0)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='materials', to='organizations.organization')),
            ],
            options={
                'ordering': ['name', 'id'],
                'indexes': [models.Index(fields=['organization', 'category'], name='material_org_category_idx'), models.Index(fields=['organization', 'is_active'], name='material_org_active_idx')],
                'constraints': [models.UniqueConstraint(fields=('organization', 'name'), name='unique_material_name_per_org')],
            },
        ),
        migrations.CreateModel(
            name='MaterialSiteAllocation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('site_name', models.CharField(blank=True, default='', max_length=160)),
                ('opening_balance', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14)),
                ('inward_qty', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14)),
                ('utilization_qty', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='site_allocations', to='materials.materialmaster')),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='organizations.organization')),
                ('site', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='material_allocations', to='sites.site')),
            ],
            options={
                'ordering': ['site_name', 'id'],
                'constraints': [models.UniqueConstraint(fields=('material', 'site'), name='unique_allocation_per_material_site')],
            },
        ),
    ]
