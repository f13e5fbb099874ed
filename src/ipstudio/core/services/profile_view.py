"""ProfileView -- 用户 Profile 只读投影

调用方只能读取本人的 Profile；其他 id 一律视为不存在。
"""

from ..config import STORE_TIMEOUT_S
from ..exceptions import NotFoundError
from ..models import EntityType, IdentityContext, Operation, UserProfile
from ..policy.access_control import authorize
from ..store import StoreGroup, run_with_timeout


class ProfileView:
    """Profile 查询服务"""

    def __init__(self, store_group: StoreGroup, timeout: float | None = STORE_TIMEOUT_S) -> None:
        self._stores = store_group
        self._timeout = timeout

    async def get_profile(self, identity: IdentityContext, user_id: str) -> UserProfile:
        """查询 Profile

        Raises:
            NotFoundError: 用户不存在或不是调用方本人
        """
        account = await run_with_timeout(
            self._stores.read(self._stores.user_store.get_user, user_id),
            self._timeout,
            "get_profile",
        )
        if account is None or not authorize(
            identity, Operation.READ, EntityType.USER_PROFILE, account
        ):
            raise NotFoundError(EntityType.USER_PROFILE.value, user_id)
        return UserProfile.from_account(account)

    async def get_own_profile(self, identity: IdentityContext) -> UserProfile:
        if identity.user_id is None:
            raise NotFoundError(EntityType.USER_PROFILE.value, "anonymous")
        return await self.get_profile(identity, identity.user_id)
