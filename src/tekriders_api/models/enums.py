"""领域枚举定义。"""

from enum import StrEnum


class UserRole(StrEnum):
    """账号角色。"""

    STUDENT = "student"  # 学员，可浏览与报名课程。
    INSTRUCTOR = "instructor"  # 讲师，可创建与上传课程。
    ADMIN = "admin"  # 平台管理员，不可通过自助注册获得。


# 自助注册与外部身份注册允许选择的角色。
SELF_SERVICE_ROLES = frozenset({UserRole.STUDENT, UserRole.INSTRUCTOR})


class IdentifierType(StrEnum):
    """登录身份标识类型。"""

    EMAIL = "email"
    PHONE = "phone"
