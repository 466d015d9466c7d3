from aiogram import Router

from giftdraw.bot.handlers import draw, exclusions, setup, start

router = Router()
router.include_router(start.router)
router.include_router(setup.router)
router.include_router(exclusions.router)
router.include_router(draw.router)
