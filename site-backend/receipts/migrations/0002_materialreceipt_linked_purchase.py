from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    dependencies = [
        ('purchasing', '0001_initial'),
        ('receipts', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='materialreceipt',
            name='linked_purchase',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='receipts', to='purchasing.materialpurchase'),
        ),
        migrations.AddIndex(
            model_name='materialreceipt',
            index=models.Index(fields=['organization', 'linked_purchase'], name='receipt_org_link_idx'),
        ),
    ]
