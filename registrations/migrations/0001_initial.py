# Generated migration for RegistrationRecord and WebhookEvent models

from django.db import migrations, models
import registrations.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='RegistrationRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(max_length=64, unique=True)),
                ('organization_name', models.CharField(blank=True, default='', max_length=100)),
                ('phone_number', models.CharField(blank=True, db_index=True, max_length=20, null=True)),
                ('status', models.CharField(choices=[('none', 'Not registered'), ('pending', 'Pending'), ('rejected', 'Rejected'), ('brand_verified', 'Brand verified'), ('campaign_pending', 'Campaign pending'), ('approved', 'Approved')], db_index=True, default='none', max_length=20)),
                ('brand_id', models.CharField(blank=True, max_length=64, null=True)),
                ('tcr_brand_id', models.CharField(blank=True, max_length=64, null=True)),
                ('campaign_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('campaign_status', models.CharField(blank=True, max_length=32, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('registered_at', models.DateTimeField(blank=True, null=True)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('next_check_at', models.DateTimeField(blank=True, null=True)),
                ('campaign_suspended', models.BooleanField(default=False)),
                ('campaign_suspended_at', models.DateTimeField(blank=True, null=True)),
                ('campaign_suspended_reason', models.CharField(blank=True, max_length=100, null=True)),
                ('number_assigned_at', models.DateTimeField(blank=True, null=True)),
                ('using_elevated_delivery_profile', models.BooleanField(default=False)),
                ('delivery_rate', models.FloatField(default=registrations.models._default_delivery_rate)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='WebhookEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('dedup_key', models.CharField(max_length=128, unique=True)),
                ('kind', models.CharField(choices=[('brand_update', 'Brand update'), ('campaign_update', 'Campaign update'), ('campaign_suspension', 'Campaign suspension'), ('phone_number_update', 'Phone number update'), ('unknown', 'Unknown')], default='unknown', max_length=32)),
                ('event_type', models.CharField(blank=True, max_length=64, null=True)),
                ('raw_payload', models.JSONField()),
                ('source_headers', models.JSONField(blank=True, null=True)),
                ('endpoint', models.CharField(choices=[('primary', 'Primary'), ('failover', 'Failover')], default='primary', max_length=16)),
                ('status', models.CharField(choices=[('RECEIVED', 'Received'), ('PROCESSED', 'Processed'), ('IGNORED', 'Ignored'), ('FAILED', 'Failed')], db_index=True, default='RECEIVED', max_length=20)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('error_message', models.TextField(blank=True, null=True)),
                ('received_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-received_at'],
            },
        ),
        migrations.AddIndex(
            model_name='registrationrecord',
            index=models.Index(fields=['status', 'next_check_at'], name='reg_status_next_check_idx'),
        ),
        migrations.AddIndex(
            model_name='registrationrecord',
            index=models.Index(fields=['brand_id'], name='reg_brand_id_idx'),
        ),
        migrations.AddIndex(
            model_name='webhookevent',
            index=models.Index(fields=['status', 'received_at'], name='webhook_status_received_idx'),
        ),
    ]
