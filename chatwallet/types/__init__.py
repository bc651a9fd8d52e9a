from .telegram import CallbackQuery, TelegramChat, TelegramMessage, TelegramUser, Update

__all__ = [
    "CallbackQuery",
    "TelegramChat",
    "TelegramMessage",
    "TelegramUser",
    "Update",
]
