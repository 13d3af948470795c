from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """
    账户模块应用配置：
    - 自定义 User 模型所在应用（AUTH_USER_MODEL = accounts.User）
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.accounts"
    label = "accounts"
    verbose_name = "Accounts"
