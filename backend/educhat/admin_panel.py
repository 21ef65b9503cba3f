from sqladmin import Admin, ModelView

from educhat.admin_auth import authentication_backend
from educhat.db.models.chat_data import ChatMessage
from educhat.db.models.user import User


class UserAdmin(ModelView, model=User):
    column_list = [User.id, User.email, User.first_name, User.last_name, User.role, User.is_active, User.created_at]
    column_searchable_list = [User.email, User.first_name, User.last_name]
    column_details_exclude_list = [User.password]
    form_excluded_columns = [User.password]
    icon = "fa-solid fa-user"


class ChatMessageAdmin(ModelView, model=ChatMessage):
    column_list = [
        ChatMessage.id,
        ChatMessage.sender_id,
        ChatMessage.receiver_id,
        ChatMessage.message,
        ChatMessage.read,
        ChatMessage.created_at,
    ]
    column_searchable_list = [ChatMessage.message, ChatMessage.sender_id, ChatMessage.receiver_id]
    column_sortable_list = [ChatMessage.created_at]
    column_default_sort = [(ChatMessage.created_at, True)]
    # 메시지는 append-only
    can_create = False
    can_edit = False
    can_delete = False
    icon = "fa-solid fa-comments"


def mount_admin(app, engine) -> Admin:
    admin = Admin(app, engine, authentication_backend=authentication_backend, title="EduAdmin")
    admin.add_view(UserAdmin)
    admin.add_view(ChatMessageAdmin)
    return admin
