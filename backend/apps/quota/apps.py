from django.apps import AppConfig


class QuotaConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.quota'
    verbose_name = 'Daily Question Quota'
