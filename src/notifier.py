import logging

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import BadRequest, ChatMigrated, Forbidden, TelegramError

logger = logging.getLogger(__name__)

# BadRequest messages meaning the chat is gone for good
PERMANENT_BAD_REQUESTS = ("chat not found", "user is deactivated")


class DeliveryError(RuntimeError):
    def __init__(self, chat_id: int, reason: str):
        super().__init__(f"Cannot deliver to chat {chat_id}: {reason}")
        self.chat_id = chat_id


class DeliveryPermanentFailure(DeliveryError):
    """The recipient is unreachable, e.g. the user blocked the bot."""


class DeliveryChatMigrated(DeliveryPermanentFailure):
    """The group became a supergroup and now lives under `new_chat_id`."""

    def __init__(self, chat_id: int, new_chat_id: int):
        super().__init__(chat_id, f"chat migrated to {new_chat_id}")
        self.new_chat_id = new_chat_id


class DeliveryTransientFailure(DeliveryError):
    """The message was not delivered but may be on a later attempt."""


class TelegramNotifier:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, chat_id: int, text: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except ChatMigrated as exc:
            raise DeliveryChatMigrated(chat_id, exc.new_chat_id) from exc
        except Forbidden as exc:
            raise DeliveryPermanentFailure(chat_id, exc.message) from exc
        except BadRequest as exc:
            if any(reason in exc.message.lower() for reason in PERMANENT_BAD_REQUESTS):
                raise DeliveryPermanentFailure(chat_id, exc.message) from exc

            raise DeliveryTransientFailure(chat_id, exc.message) from exc
        except TelegramError as exc:
            raise DeliveryTransientFailure(chat_id, exc.message) from exc

        logger.debug("Message sent to chat %s", chat_id)
