"""
Flag 校验器：

- 写入：hash_flag 使用与账户密码相同的慢哈希（django.contrib.auth.hashers.make_password），盐内嵌在编码串中
- 校验：verify 使用 check_password，比较为常量时间
- 存储的哈希损坏/算法不可用时抛 FlagVerificationError，绝不返回 True
- 日志中不记录原始 Flag 尝试值
"""

from __future__ import annotations

from django.contrib.auth.hashers import check_password, identify_hasher, make_password

from apps.common.exceptions import FlagVerificationError, ValidationError
from apps.common.infra.logger import get_logger, logger_extra

logger = get_logger(__name__)


def normalize_flag(value: str) -> str:
    """去掉首尾空白；大小写敏感"""
    return (value or "").strip()


class FlagVerifier:
    """Flag 哈希与比对，可注入到提交服务中替换"""

    def hash_flag(self, flag: str) -> str:
        normalized = normalize_flag(flag)
        if not normalized:
            raise ValidationError(message="Flag 不能为空")
        return make_password(normalized)

    def verify(self, attempt: str, stored_hash: str) -> bool:
        """
        比对尝试值与存储哈希：
        - 先识别哈希算法，识别失败视为哈希损坏
        - check_password 内部异常同样视为校验器故障
        """
        try:
            identify_hasher(stored_hash)
        except (ValueError, TypeError) as exc:
            logger.error(
                "Flag 哈希格式无法识别",
                extra=logger_extra({"reason": str(exc)}),
            )
            raise FlagVerificationError() from exc

        try:
            return bool(check_password(normalize_flag(attempt), stored_hash))
        except (ValueError, TypeError) as exc:
            logger.error(
                "Flag 校验过程出错",
                extra=logger_extra({"reason": exc.__class__.__name__}),
            )
            raise FlagVerificationError() from exc


default_verifier = FlagVerifier()
