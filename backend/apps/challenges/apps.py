from django.apps import AppConfig


class ChallengesConfig(AppConfig):
    """
    Challenges 应用配置：题目、解题记录、提示使用记录
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.challenges'
    label = 'challenges'
    verbose_name = "题目"
