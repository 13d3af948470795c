"""
业务异常

服务层只抛 BizError 子类，由 apps.common.exception_handler 统一转成
{code, message, data, extra} 响应。数据库、程序错误不在这里建模。

错误码分段：
    400xx 参数      401xx 认证      403xx 权限      404xx 不存在
    409xx 冲突      429xx 限流      480xx 题目/提示  481xx 提交
    500xx 内部错误  503xx 缓存/存储不可用
"""

from __future__ import annotations


class BizError(Exception):
    """业务异常基类：子类通过 default_code / default_message / http_status 声明自身语义"""

    default_code: int = 40000
    default_message: str = "业务错误"
    http_status: int = 400

    def __init__(self, message: str | None = None, code: int | None = None, *, extra: dict | None = None):
        self.code = self.default_code if code is None else code
        self.message = self.default_message if message is None else message
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(BizError):
    default_code = 40002
    default_message = "请求参数不合法"


class NotFoundError(BizError):
    default_code = 40400
    default_message = "资源不存在"
    http_status = 404


class ConflictError(BizError):
    """重复注册等状态冲突"""

    default_code = 40900
    default_message = "资源冲突"
    http_status = 409


class RateLimitError(BizError):
    """登录、注册等接口级限流；Flag 提交限流见 SubmissionRateLimitError"""

    default_code = 42900
    default_message = "请求过于频繁，请稍后再试"
    http_status = 429


# 认证与权限

class AuthError(BizError):
    default_code = 40100
    default_message = "认证失败"
    http_status = 401


class InvalidCredentialsError(AuthError):
    default_code = 40101
    default_message = "用户名或密码错误"


class TokenError(AuthError):
    default_code = 40102
    default_message = "登录状态已失效，请重新登录"


class AccountInactiveError(AuthError):
    default_code = 40103
    default_message = "账户失效，请联系管理员"


class PermissionDeniedError(BizError):
    default_code = 40300
    default_message = "无权限进行该操作"
    http_status = 403


# 题目与提示

class ChallengeError(BizError):
    default_code = 48000
    default_message = "题目相关错误"


class ChallengeNotAvailableError(ChallengeError):
    """题目存在但未发布"""

    default_code = 48001
    default_message = "当前题目暂不可用"


class HintNotFoundError(ChallengeError):
    default_code = 48005
    default_message = "提示不存在"
    http_status = 404


class HintAlreadyUsedError(ChallengeError):
    default_code = 48006
    default_message = "该提示已使用"
    http_status = 409


# 提交

class SubmissionError(BizError):
    default_code = 48100
    default_message = "提交相关错误"


class SubmissionRateLimitError(SubmissionError):
    """extra["retry_after"] 为需要等待的整秒数"""

    default_code = 48102
    default_message = "提交过于频繁，请稍后再试"
    http_status = 429


# 服务端故障

class InternalError(BizError):
    default_code = 50000
    default_message = "服务器内部错误"
    http_status = 500


class FlagVerificationError(InternalError):
    """存储的 Flag 哈希损坏或算法不可用；此时提交一律不算正确"""

    default_code = 50010
    default_message = "Flag 校验失败，请联系管理员"


class InfrastructureError(BizError):
    default_code = 50300
    default_message = "系统服务暂时不可用，请稍后重试"
    http_status = 503


class CacheUnavailableError(InfrastructureError):
    default_code = 50301
    default_message = "缓存服务暂时不可用，请稍后重试"


class StoreError(InfrastructureError):
    """数据库写入失败（超时、连接中断、无法解释的约束冲突），调用方可重试"""

    default_code = 50310
    default_message = "数据存储暂时不可用，请稍后重试"
