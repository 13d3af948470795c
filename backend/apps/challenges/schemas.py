"""
题目模块入参 Schema：创建、更新、发布
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError

from .models import Challenge


def validate_hints(hints: Any) -> list[dict]:
    """
    校验并规范化提示列表：
    - 必须是列表，每项包含非空 text 与非负整数 cost
    """
    if hints is None:
        return []
    if not isinstance(hints, list):
        raise ValidationError(message="hints 必须是列表")
    normalized: list[dict] = []
    for idx, item in enumerate(hints):
        if not isinstance(item, dict):
            raise ValidationError(message=f"第 {idx + 1} 条提示格式不正确")
        text = item.get("text")
        cost = item.get("cost", 0)
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(message=f"第 {idx + 1} 条提示内容不能为空")
        if isinstance(cost, bool) or not isinstance(cost, int) or cost < 0:
            raise ValidationError(message=f"第 {idx + 1} 条提示扣分必须为非负整数")
        normalized.append({"text": text.strip(), "cost": cost})
    return normalized


def validate_artifacts(artifacts: Any) -> list[dict]:
    """附件只保存元信息（name/url/size），不处理文件本身"""
    if artifacts is None:
        return []
    if not isinstance(artifacts, list):
        raise ValidationError(message="artifacts 必须是列表")
    normalized: list[dict] = []
    for item in artifacts:
        if not isinstance(item, dict) or not str(item.get("name") or "").strip():
            raise ValidationError(message="附件信息需包含 name")
        normalized.append(
            {
                "name": str(item["name"]).strip(),
                "url": str(item.get("url") or ""),
                "size": item.get("size"),
            }
        )
    return normalized


def _validate_points(points: Any) -> None:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError(message="分值必须为正整数")


def _validate_difficulty(difficulty: Any) -> None:
    if difficulty not in Challenge.Difficulty.values:
        raise ValidationError(message="难度取值不合法")


@dataclass
class ChallengeCreateSchema(BaseSchema):
    """
    创建题目入参：
    - flag 为明文，只在服务层哈希后落库
    """

    title: str = ""
    flag: str = ""
    category: str = ""
    points: int = 100
    description: str = ""
    difficulty: str = Challenge.Difficulty.MEDIUM
    is_published: bool = False
    hints: list = field(default_factory=list)
    artifacts: list = field(default_factory=list)

    def validate(self) -> None:
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValidationError(message="题目标题不能为空")
        if len(self.title) > 200:
            raise ValidationError(message="题目标题不能超过 200 个字符")
        if not isinstance(self.category, str) or not self.category.strip():
            raise ValidationError(message="题目分类不能为空")
        if len(self.category) > 64:
            raise ValidationError(message="题目分类不能超过 64 个字符")
        if not isinstance(self.flag, str) or not self.flag.strip():
            raise ValidationError(message="Flag 不能为空")
        _validate_points(self.points)
        _validate_difficulty(self.difficulty)
        if not isinstance(self.is_published, bool):
            raise ValidationError(message="is_published 必须是布尔值")
        self.title = self.title.strip()
        self.category = self.category.strip()
        self.hints = validate_hints(self.hints)
        self.artifacts = validate_artifacts(self.artifacts)


@dataclass
class ChallengeUpdateSchema(BaseSchema):
    """更新题目入参：所有字段可选，None 表示不修改"""

    title: Optional[str] = None
    flag: Optional[str] = None
    category: Optional[str] = None
    points: Optional[int] = None
    description: Optional[str] = None
    difficulty: Optional[str] = None
    hints: Optional[list] = None
    artifacts: Optional[list] = None

    def validate(self) -> None:
        if self.title is not None:
            if not isinstance(self.title, str) or not self.title.strip() or len(self.title) > 200:
                raise ValidationError(message="题目标题不合法")
            self.title = self.title.strip()
        if self.category is not None:
            if not isinstance(self.category, str) or not self.category.strip() or len(self.category) > 64:
                raise ValidationError(message="题目分类不合法")
            self.category = self.category.strip()
        if self.flag is not None and (not isinstance(self.flag, str) or not self.flag.strip()):
            raise ValidationError(message="Flag 不能为空")
        if self.points is not None:
            _validate_points(self.points)
        if self.difficulty is not None:
            _validate_difficulty(self.difficulty)
        if self.hints is not None:
            self.hints = validate_hints(self.hints)
        if self.artifacts is not None:
            self.artifacts = validate_artifacts(self.artifacts)


@dataclass
class ChallengePublishSchema(BaseSchema):
    """发布/下线题目"""

    is_published: Any = None

    def validate(self) -> None:
        if not isinstance(self.is_published, bool):
            raise ValidationError(message="is_published 必须是布尔值")
