from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ShopCredential',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('shop_domain', models.CharField(help_text='Shop domain, e.g. example.myshopify.com', max_length=255, unique=True)),
                ('access_token_encrypted', models.BinaryField()),
                ('scope', models.CharField(blank=True, help_text='Scopes granted at install time', max_length=500)),
            ],
            options={
                'verbose_name': 'Shop Credential',
                'verbose_name_plural': 'Shop Credentials',
                'db_table': 'shop_credentials',
                'ordering': ['shop_domain'],
            },
        ),
    ]
