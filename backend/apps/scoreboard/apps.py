from django.apps import AppConfig


class ScoreboardConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.scoreboard"
    verbose_name = "排行榜与计分"
