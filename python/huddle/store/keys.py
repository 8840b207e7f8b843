"""Store key layout.

Every key the engine reads or writes is built here so the relationships
between canonical records and their index views stay in one place.

- chat:{a--b}:messages               sorted set, direct conversation log
- group:{gid}:messages               sorted set, group conversation log
- group:{gid}                        canonical Group record (JSON)
- group:{gid}:members                set of member ids
- group:{gid}:join_requests          set of pending requester ids
- groups:all                         set of live group ids
- user:{uid}                         profile record (JSON)
- user:{uid}:groups                  set of group ids the user belongs to
- user:{uid}:group_join_requests     admin inbox, set of JoinRequest JSON
- user:{uid}:friends                 set of friend ids
- user:{uid}:incoming_friend_requests set of requester ids
- image:{id}                         {mime, data} blob (JSON)
"""

GROUP_REGISTRY = "groups:all"


def direct_log(direct_id: str) -> str:
    return f"chat:{direct_id}:messages"


def group_log(group_id: str) -> str:
    return f"group:{group_id}:messages"


def group_record(group_id: str) -> str:
    return f"group:{group_id}"


def group_members(group_id: str) -> str:
    return f"group:{group_id}:members"


def group_join_requests(group_id: str) -> str:
    return f"group:{group_id}:join_requests"


def user_profile(user_id: str) -> str:
    return f"user:{user_id}"


def user_groups(user_id: str) -> str:
    return f"user:{user_id}:groups"


def user_join_inbox(user_id: str) -> str:
    return f"user:{user_id}:group_join_requests"


def user_friends(user_id: str) -> str:
    return f"user:{user_id}:friends"


def user_incoming_friend_requests(user_id: str) -> str:
    return f"user:{user_id}:incoming_friend_requests"


def image_blob(image_id: str) -> str:
    return f"image:{image_id}"
