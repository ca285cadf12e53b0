from django.apps import AppConfig


class AuthnConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.authn'
    verbose_name = 'Bearer Token Authentication'
