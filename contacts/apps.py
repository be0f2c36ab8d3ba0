from django.apps import AppConfig


class ContactsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "contacts"
    verbose_name = "Contact Sync"

    def ready(self):
        import config.checks  # noqa: F401 -- registers system checks
