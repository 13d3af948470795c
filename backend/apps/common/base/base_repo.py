from __future__ import annotations

from typing import Any, Generic, TypeVar

from django.db.models import Model, QuerySet

from apps.common.exceptions import NotFoundError

ModelT = TypeVar("ModelT", bound=Model)


class BaseRepo(Generic[ModelT]):
    """
    仓储基类：服务层通过仓储访问 ORM
    子类声明 model，必要时覆盖 get_queryset 追加 select_related / annotate
    """

    model: type[ModelT]
    not_found_message: str = "资源不存在"

    def get_queryset(self) -> QuerySet[ModelT]:
        return self.model._default_manager.all()

    def filter(self, **lookups) -> QuerySet[ModelT]:
        return self.get_queryset().filter(**lookups)

    def get_or_raise(self, pk: Any) -> ModelT:
        """按主键取对象；不存在或主键格式非法都视为 NotFoundError"""
        try:
            return self.get_queryset().get(pk=pk)
        except (self.model.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFoundError(message=self.not_found_message) from exc

    def create(self, data: dict) -> ModelT:
        return self.model._default_manager.create(**data)

    def update(self, instance: ModelT, data: dict) -> ModelT:
        for name, value in data.items():
            setattr(instance, name, value)
        instance.save(update_fields=list(data) or None)
        return instance

    def delete(self, instance: ModelT) -> None:
        instance.delete()
