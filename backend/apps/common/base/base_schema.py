from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Iterable, Mapping, TypeVar

SchemaT = TypeVar("SchemaT", bound="BaseSchema")


@dataclass
class BaseSchema:
    """
    服务层入参 DTO：视图把请求数据转成 Schema，服务只接收校验过的 Schema

    - from_dict 只取声明过的字段，请求里多余的键（如 is_staff、score）被丢弃
    - validate 由子类实现，出错抛 ValidationError
    """

    auto_validate: ClassVar[bool] = False

    def validate(self) -> None:
        raise NotImplementedError

    @classmethod
    def from_dict(cls: type[SchemaT], data: Mapping[str, Any] | None, *,
                  auto_validate: bool | None = None) -> SchemaT:
        declared = {f.name for f in fields(cls)}
        instance = cls(**{k: v for k, v in (data or {}).items() if k in declared})
        if cls.auto_validate if auto_validate is None else auto_validate:
            instance.validate()
        return instance

    def to_dict(self, *, exclude_none: bool = False, exclude: Iterable[str] = ()) -> dict[str, Any]:
        skipped = set(exclude)
        return {
            k: v for k, v in asdict(self).items()
            if k not in skipped and not (exclude_none and v is None)
        }
