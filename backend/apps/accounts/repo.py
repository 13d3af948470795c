"""账户模块的数据访问层

封装 User 的查询与创建，避免视图/服务直接操作 ORM
"""

from __future__ import annotations

from typing import Optional

from django.contrib.auth import get_user_model

from apps.common.base.base_repo import BaseRepo

User = get_user_model()


class UserRepo(BaseRepo[User]):
    """
    用户仓储：
    - 注册时唯一性校验与创建
    - 登录时按用户名/邮箱定位用户
    - 公开资料、排名查询时按主键取用户
    """

    model = User
    not_found_message = "用户不存在"

    def username_exists(self, username: str) -> bool:
        return self.filter(username=username).exists()

    def email_exists(self, email: str) -> bool:
        return self.filter(email=email).exists()

    def get_by_identifier(self, identifier: str) -> Optional[User]:
        """根据用户名或邮箱获取用户：包含 @ 时按邮箱查询"""
        lookup = {"email": identifier.lower()} if "@" in identifier else {"username": identifier}
        return self.get_queryset().filter(**lookup).first()

    def create_user(self, *, username: str, email: str, password: str, **extra) -> User:
        """创建用户，密码由 Django 内置 create_user 负责哈希；初始积分为 0"""
        return self.model.objects.create_user(  # type: ignore[call-arg]
            username=username,
            email=email,
            password=password,
            **extra,
        )
