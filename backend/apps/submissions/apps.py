from django.apps import AppConfig


class SubmissionsConfig(AppConfig):
    """
    Submissions 应用配置：Flag 提交、判题与提交频率限制
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.submissions"
    label = "submissions"
    verbose_name = "提交记录"
