"""
Django settings for Config project.

所有可调参数均支持环境变量覆盖（os.getenv），默认值面向本地开发：
- 数据库：SQLite（可切换 PostgreSQL）
- 缓存：本地内存（可切换 Redis，多实例部署时用于共享提交频率窗口）
- 日志：LOG_PATH/system.log，按日期轮转
"""

import os
from datetime import timedelta
from pathlib import Path


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-ctf-engine-secret-key-change-me-in-production")

DEBUG = _env_bool("DEBUG")

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "apps.common",
    "apps.accounts",
    "apps.challenges",
    "apps.submissions",
    "apps.scoreboard",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "apps.common.middleware.RequestContextMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "Config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "Config.wsgi.application"
ASGI_APPLICATION = "Config.asgi.application"

# ======================
# 数据库
# ======================
# SQLite 使用 IMMEDIATE 事务 + busy timeout：并发写入排队等待而不是直接失败
DB_ENGINE = os.getenv("DB_ENGINE", "sqlite").lower()

if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME", "ctf"),
            "USER": os.getenv("DB_USER", "ctf"),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "127.0.0.1"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "CONN_MAX_AGE": _env_int("DB_CONN_MAX_AGE", 60),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
            "OPTIONS": {
                "timeout": _env_int("DB_BUSY_TIMEOUT", 20),
                "transaction_mode": "IMMEDIATE",
            },
            # 文件型测试库：多线程并发测试需要各线程共享同一个库
            "TEST": {"NAME": str(BASE_DIR / "test_db.sqlite3")},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "accounts.User"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator", "OPTIONS": {"min_length": 8}},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Flag 与密码共用同一套慢哈希；首选项决定新写入 Flag 的算法
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.PBKDF2PasswordHasher",
    "django.contrib.auth.hashers.PBKDF2SHA1PasswordHasher",
    "django.contrib.auth.hashers.Argon2PasswordHasher",
    "django.contrib.auth.hashers.BCryptSHA256PasswordHasher",
    "django.contrib.auth.hashers.ScryptPasswordHasher",
]

LANGUAGE_CODE = os.getenv("LANGUAGE_CODE", "zh-hans")
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Shanghai")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ======================
# 缓存 / Redis
# ======================
REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")
REDIS_PORT = _env_int("REDIS_PORT", 6379)
REDIS_DB_CACHE = _env_int("REDIS_DB_CACHE", 0)

if os.getenv("CACHE_BACKEND", "locmem").lower() == "redis":
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB_CACHE}",
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "ctf-engine",
        }
    }

# ======================
# DRF / JWT / OpenAPI
# ======================
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "apps.common.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "apps.common.permissions.AllowAny",
    ],
    "DEFAULT_PAGINATION_CLASS": "apps.common.pagination.StandardPagination",
    "PAGE_SIZE": 20,
    "EXCEPTION_HANDLER": "apps.common.exception_handler.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_RATES": {
        "login": os.getenv("THROTTLE_LOGIN_RATE", "10/min"),
        "register": os.getenv("THROTTLE_REGISTER_RATE", "5/min"),
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=_env_int("JWT_ACCESS_MINUTES", 60)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=_env_int("JWT_REFRESH_DAYS", 7)),
    "AUTH_HEADER_TYPES": ("Bearer",),
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
}

JWT_USE_COOKIE = _env_bool("JWT_USE_COOKIE")
JWT_ACCESS_COOKIE_NAME = os.getenv("JWT_ACCESS_COOKIE_NAME", "ctf_access_token")

SPECTACULAR_SETTINGS = {
    "TITLE": "CTF Engine API",
    "DESCRIPTION": "题目、Flag 提交、提示与排行榜接口",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# ======================
# 日志
# ======================
LOG_PATH = os.getenv("LOG_PATH", str(BASE_DIR / "logs"))

# ======================
# Flag 提交频率窗口
# ======================
# BACKEND 可选：
# - apps.submissions.throttle.CacheSubmissionThrottle（默认，滑动窗口，走 Django 缓存）
# - apps.submissions.throttle.SubmissionLogThrottle（按提交记录计数，以审计日志为准）
# - apps.submissions.throttle.RedisSubmissionThrottle（固定窗口计数器，走 Redis）
# SCOPE：challenge = 按“用户+题目”计数；user = 按用户全局计数
FLAG_SUBMIT_THROTTLE = {
    "BACKEND": os.getenv("FLAG_SUBMIT_THROTTLE_BACKEND", "apps.submissions.throttle.CacheSubmissionThrottle"),
    "RATE": _env_int("FLAG_SUBMIT_RATE", 10),
    "WINDOW_SECONDS": _env_int("FLAG_SUBMIT_WINDOW_SECONDS", 60),
    "SCOPE": os.getenv("FLAG_SUBMIT_THROTTLE_SCOPE", "challenge"),
}

FLAG_MAX_LENGTH = _env_int("FLAG_MAX_LENGTH", 1024)

# ======================
# 排行榜
# ======================
LEADERBOARD_DEFAULT_LIMIT = _env_int("LEADERBOARD_DEFAULT_LIMIT", 50)
LEADERBOARD_MAX_LIMIT = _env_int("LEADERBOARD_MAX_LIMIT", 500)
