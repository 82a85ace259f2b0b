import asyncio
from aiohttp import web
from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from app.config import Settings
from app.loader import load_bot
from loguru import logger


async def run_webhook(bot: Bot, dp: Dispatcher, settings: Settings):
    """
    Serve Telegram updates over a webhook (aiohttp).
    """
    webhook_url = settings.WEBHOOK_BASE_URL.rstrip("/") + settings.WEBHOOK_PATH

    async def set_webhook():
        await bot.set_webhook(webhook_url, secret_token=settings.WEBHOOK_SECRET, drop_pending_updates=False)
        logger.info(f"Webhook set to {webhook_url}")

    dp.startup.register(set_webhook)

    app = web.Application()
    SimpleRequestHandler(
        dispatcher=dp,
        bot=bot,
        secret_token=settings.WEBHOOK_SECRET,
    ).register(app, path=settings.WEBHOOK_PATH)
    setup_application(app, dp, bot=bot)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.WEB_HOST, settings.WEB_PORT)
    await site.start()
    logger.info(f"Listening on {settings.WEB_HOST}:{settings.WEB_PORT}{settings.WEBHOOK_PATH}")
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def main():
    """
    Main entry point - load bot and start polling or webhook server.
    """
    try:
        settings = Settings()
        bot, dp = load_bot(settings)
        if settings.WEBHOOK_BASE_URL:
            logger.info("Starting bot in webhook mode...")
            await run_webhook(bot, dp, settings)
        else:
            logger.info("Starting bot...")
            await bot.delete_webhook(drop_pending_updates=False)
            await dp.start_polling(bot)
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.exception(f"Bot error: {e}")
    finally:
        if 'bot' in locals():
            await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
