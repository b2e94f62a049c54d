from django.apps import AppConfig


class CollegeAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'college_app'
    verbose_name = 'College ERP'
