"""
Flag 提交的结构化结果

判题流程不用异常表达“错误 Flag / 已解过 / 未发布”这类预期结果，
而是返回下列不可变对象之一，由视图层按类型映射为 HTTP 响应
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class Solved:
    """首次解出：points_awarded 为本次得分，score 为加分后的积分"""
    points_awarded: int
    score: int

    status: ClassVar[str] = "solved"
    correct: ClassVar[bool] = True


@dataclass(frozen=True)
class Incorrect:
    status: ClassVar[str] = "incorrect"
    correct: ClassVar[bool] = False


@dataclass(frozen=True)
class AlreadySolved:
    """已经解出过该题，不再加分（包括并发提交中落败的一方）"""
    status: ClassVar[str] = "already_solved"
    correct: ClassVar[bool] = False


@dataclass(frozen=True)
class NotPublished:
    status: ClassVar[str] = "not_published"
    correct: ClassVar[bool] = False


@dataclass(frozen=True)
class NotFound:
    status: ClassVar[str] = "not_found"
    correct: ClassVar[bool] = False


SubmissionOutcome = Union[Solved, Incorrect, AlreadySolved, NotPublished, NotFound]
