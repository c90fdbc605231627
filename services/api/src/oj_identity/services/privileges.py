"""权限判定规则（纯函数，无副作用）。"""

from oj_identity.models.enums import Privilege


class PrivilegePolicy:
    """初始权限分配与权限变更授权。"""

    def initial_privilege(self, requires_confirmation: bool) -> Privilege:
        """注册需要确认时返回 PENDING，否则直接启用。"""
        return Privilege.PENDING if requires_confirmation else Privilege.ENABLED

    def can_change_privilege(
        self,
        acting: Privilege | None,
        target_current: Privilege,
        target_requested: Privilege,
    ) -> bool:
        """判断操作者能否把目标权限从 target_current 调整为 target_requested。

        未变更总是允许；匿名操作者与 ADMIN 以下不允许任何变更；
        ROOT 不受限；其余操作者必须同时高于目标的当前与请求等级。
        """
        if target_current == target_requested:
            return True
        if acting is None or acting < Privilege.ADMIN:
            return False
        if acting == Privilege.ROOT:
            return True
        return acting > target_current and acting > target_requested

    def can_edit_profile(
        self,
        acting_id: int | None,
        acting: Privilege | None,
        target_id: int,
        target: Privilege | None,
    ) -> bool:
        """本人，或等级高于目标的管理员，可以修改资料（含口令与邮箱）。

        ROOT 不受限；目标权限无法识别时只有 ROOT 可以修改。
        """
        if acting is None or acting_id is None:
            return False
        if acting_id == target_id:
            return self.is_login_allowed(acting)
        if acting == Privilege.ROOT:
            return True
        if acting < Privilege.ADMIN or target is None:
            return False
        return acting > target

    def is_login_allowed(self, privilege: Privilege) -> bool:
        return privilege >= Privilege.ENABLED
