"""
题目模块的序列化工具函数：
- 将模型对象转换为接口响应数据
- flag_hash 永远不出现在任何输出中
"""

from __future__ import annotations

from typing import Any

from apps.common.permissions import is_owner_or_admin

from .models import Challenge, ChallengeSolve


def serialize_challenge(challenge: Challenge, *, user: Any = None) -> dict:
    """
    题目序列化：基础信息、提示概览（仅序号与扣分）、附件元信息
    - solve_count / has_solved 来自列表查询的 annotate，缺失时不输出
    - 作者与管理员可直接看到提示内容
    """
    hints = challenge.hints or []
    can_manage = is_owner_or_admin(user, challenge.author_id)
    data = {
        "id": challenge.id,
        "title": challenge.title,
        "slug": challenge.slug,
        "description": challenge.description,
        "category": challenge.category,
        "difficulty": challenge.difficulty,
        "points": challenge.points,
        "is_published": challenge.is_published,
        "author": {
            "id": challenge.author_id,
            "username": challenge.author.username if challenge.author_id else None,
        },
        "hints": [
            serialize_hint(idx, hint, reveal=can_manage)
            for idx, hint in enumerate(hints)
        ],
        "artifacts": list(challenge.artifacts or []),
        "created_at": challenge.created_at,
        "updated_at": challenge.updated_at,
    }
    if hasattr(challenge, "solve_count"):
        data["solve_count"] = challenge.solve_count
    if hasattr(challenge, "has_solved"):
        data["has_solved"] = bool(challenge.has_solved)
    return data


def serialize_hint(index: int, hint: dict, *, reveal: bool, used: bool | None = None) -> dict:
    """提示序列化：未使用时不返回内容"""
    data = {
        "index": index,
        "cost": hint.get("cost", 0),
        "text": hint.get("text", "") if reveal else None,
    }
    if used is not None:
        data["used"] = used
    return data


def serialize_solve(solve: ChallengeSolve) -> dict:
    """解题记录序列化：用户资料页的已解题目列表"""
    return {
        "challenge_id": solve.challenge_id,
        "title": solve.challenge.title,
        "category": solve.challenge.category,
        "awarded_points": solve.awarded_points,
        "solved_at": solve.solved_at,
    }
