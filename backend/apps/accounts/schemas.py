"""账户相关的入参校验 Schema

定义注册、登录请求的输入结构与校验规则
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, ClassVar

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email as django_validate_email

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,32}$")


def _validate_email(value: str) -> None:
    """复用 Django 内置邮箱校验，统一转为业务异常"""
    try:
        django_validate_email(value)
    except DjangoValidationError as exc:
        raise ValidationError(message="邮箱格式不正确") from exc


def _validate_password(value: str, username: str) -> None:
    """密码强度校验：走 settings.AUTH_PASSWORD_VALIDATORS，取第一条错误提示"""
    if not value or len(value) > 64:
        raise ValidationError(message="密码长度需为 8-64 位")
    try:
        validate_password(value)
    except DjangoValidationError as exc:
        raise ValidationError(message=exc.messages[0] if exc.messages else "密码强度不足") from exc
    if value.lower() == username.lower():
        raise ValidationError(message="密码不能与用户名相同")


@dataclass
class RegisterSchema(BaseSchema):
    """
    注册入参 Schema：
    - 校验用户名格式、邮箱格式、密码强度与二次确认
    """

    # 用户名：3-32 位字母/数字/._-
    username: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    # 昵称：可选，默认回填为用户名
    nickname: Optional[str] = field(default=None)

    def validate(self) -> None:
        if not USERNAME_PATTERN.match(self.username or ""):
            raise ValidationError(message="用户名需为 3-32 位字母/数字/._- 组合")

        _validate_email(self.email)
        _validate_password(self.password, self.username)

        if self.password != self.confirm_password:
            raise ValidationError(message="两次输入的密码不一致")

        if self.nickname is not None and len(self.nickname) > 40:
            raise ValidationError(message="昵称不能超过 40 个字符")


@dataclass
class LoginSchema(BaseSchema):
    """
    登录入参 Schema：identifier 为用户名或邮箱
    """
    auto_validate: ClassVar[bool] = True

    identifier: str = ""
    password: str = ""

    def validate(self) -> None:
        if not self.identifier or len(self.identifier) < 3:
            raise ValidationError(message="请输入正确的用户名或邮箱")
        if not self.password:
            raise ValidationError(message="请输入密码")
