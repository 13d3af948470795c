from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from django.conf import settings

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError


# Schema：定义提交 Flag 与查询提交记录的入参与校验


@dataclass
class SubmissionCreateSchema(BaseSchema):
    """
    提交 Flag 入参：
    - flag 必填、不能全为空白，长度受 FLAG_MAX_LENGTH 限制
    """

    auto_validate: ClassVar[bool] = True
    flag: Any = ""

    def validate(self) -> None:
        max_length = getattr(settings, "FLAG_MAX_LENGTH", 1024)
        if not isinstance(self.flag, str) or not self.flag.strip():
            raise ValidationError(message="请填写提交内容（Flag）")
        if len(self.flag) > max_length:
            raise ValidationError(message=f"提交内容过长，请控制在 {max_length} 字以内")


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message=f"{name} 必须为整数")
    if parsed <= 0:
        raise ValidationError(message=f"{name} 必须为正整数")
    return parsed


@dataclass
class SubmissionQuerySchema(BaseSchema):
    """提交记录查询参数：user_id / challenge_id 均可选"""

    auto_validate: ClassVar[bool] = True
    user_id: Any = None
    challenge_id: Any = None

    def validate(self) -> None:
        self.user_id = _optional_int(self.user_id, "user_id")
        self.challenge_id = _optional_int(self.challenge_id, "challenge_id")
