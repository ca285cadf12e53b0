# Generated migration for Document and DocumentChunk models

from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('owner_user_id', models.CharField(db_index=True, help_text='User ID (sub claim) of the owner', max_length=255)),
                ('filename', models.CharField(help_text='Original filename', max_length=255)),
                ('content_hash', models.CharField(blank=True, default='', help_text='SHA-256 hash of file content', max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'documents',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='DocumentChunk',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('owner_user_id', models.CharField(db_index=True, help_text='User ID (sub claim) of the owner', max_length=255)),
                ('text', models.TextField(help_text='The text content of this chunk')),
                ('embedding', models.JSONField(blank=True, help_text='Embedding vector, filled lazily on first query', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('document', models.ForeignKey(help_text='The source document', on_delete=django.db.models.deletion.CASCADE, related_name='chunks', to='docs.document')),
            ],
            options={
                'db_table': 'doc_chunks',
                'ordering': ['created_at', 'id'],
            },
        ),
        migrations.AddIndex(
            model_name='document',
            index=models.Index(fields=['owner_user_id', 'content_hash'], name='documents_owner_hash_idx'),
        ),
    ]
