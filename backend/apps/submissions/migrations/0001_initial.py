import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("challenges", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Submission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("flag_submitted", models.TextField(verbose_name="提交 Flag")),
                (
                    "status",
                    models.CharField(
                        choices=[("accepted", "正确"), ("rejected", "错误"), ("duplicate", "重复提交")],
                        max_length=20,
                        verbose_name="状态",
                    ),
                ),
                ("is_correct", models.BooleanField(default=False, verbose_name="是否正确")),
                ("message", models.CharField(blank=True, default="", max_length=255, verbose_name="提示")),
                ("awarded_points", models.PositiveIntegerField(default=0, verbose_name="得分")),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True, verbose_name="来源 IP")),
                ("user_agent", models.CharField(blank=True, default="", max_length=255, verbose_name="User-Agent")),
                (
                    "created_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name="提交时间"),
                ),
                (
                    "challenge",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to="challenges.challenge",
                        verbose_name="题目",
                    ),
                ),
                (
                    "solve",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="submissions",
                        to="challenges.challengesolve",
                        verbose_name="解题记录",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="用户",
                    ),
                ),
            ],
            options={
                "verbose_name": "提交记录",
                "verbose_name_plural": "提交记录",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "challenge", "created_at"], name="sub_user_chal_time_idx"),
                    models.Index(fields=["challenge", "status"], name="sub_chal_status_idx"),
                ],
            },
        ),
    ]
