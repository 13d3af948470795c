import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Challenge",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(help_text="展示给选手的题目名称", max_length=200, verbose_name="题目标题")),
                (
                    "slug",
                    models.SlugField(
                        help_text="由标题生成并附加随机后缀", max_length=220, unique=True, verbose_name="题目标识"
                    ),
                ),
                ("description", models.TextField(blank=True, help_text="完整题面描述", verbose_name="题目描述")),
                (
                    "category",
                    models.CharField(
                        db_index=True, help_text="如 web / pwn / crypto / misc", max_length=64, verbose_name="分类"
                    ),
                ),
                (
                    "difficulty",
                    models.CharField(
                        choices=[("easy", "Easy"), ("medium", "Medium"), ("hard", "Hard")],
                        default="medium",
                        max_length=20,
                        verbose_name="难度",
                    ),
                ),
                (
                    "points",
                    models.PositiveIntegerField(default=100, help_text="解出后获得的分值", verbose_name="分值"),
                ),
                (
                    "flag_hash",
                    models.CharField(help_text="加盐慢哈希，不对外暴露", max_length=256, verbose_name="Flag 哈希"),
                ),
                ("is_published", models.BooleanField(db_index=True, default=False, verbose_name="已发布")),
                (
                    "hints",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text='有序提示列表：[{"text": "...", "cost": 10}]',
                        verbose_name="提示",
                    ),
                ),
                (
                    "artifacts",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text='附件元信息：[{"name", "url", "size"}]',
                        verbose_name="附件信息",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="创建时间")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="更新时间")),
                (
                    "author",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="authored_challenges",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="作者",
                    ),
                ),
            ],
            options={
                "verbose_name": "题目",
                "verbose_name_plural": "题目",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="ChallengeSolve",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "awarded_points",
                    models.PositiveIntegerField(default=0, help_text="解题时题目的分值", verbose_name="得分"),
                ),
                ("solved_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="解题时间")),
                (
                    "challenge",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="solves",
                        to="challenges.challenge",
                        verbose_name="题目",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="challenge_solves",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="选手",
                    ),
                ),
            ],
            options={
                "verbose_name": "解题记录",
                "verbose_name_plural": "解题记录",
                "ordering": ["solved_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "challenge"), name="uniq_solve_user_challenge"),
                ],
            },
        ),
        migrations.CreateModel(
            name="HintUsage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("hint_index", models.PositiveIntegerField(help_text="从 0 开始的提示下标", verbose_name="提示序号")),
                ("cost", models.IntegerField(default=0, verbose_name="扣分")),
                ("used_at", models.DateTimeField(auto_now_add=True, verbose_name="使用时间")),
                (
                    "challenge",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="hint_usages",
                        to="challenges.challenge",
                        verbose_name="题目",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="hint_usages",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="选手",
                    ),
                ),
            ],
            options={
                "verbose_name": "提示使用记录",
                "verbose_name_plural": "提示使用记录",
                "ordering": ["used_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "challenge", "hint_index"), name="uniq_hint_usage"),
                ],
            },
        ),
    ]
