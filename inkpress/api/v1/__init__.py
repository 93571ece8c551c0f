from fastapi import APIRouter

from inkpress.api.v1 import articles, categories, comments, favorites, follows, notifications, reactions

router = APIRouter(prefix="/api/v1")

router.include_router(articles.router)
router.include_router(comments.router)
router.include_router(reactions.router)
router.include_router(favorites.router)
router.include_router(follows.router)
router.include_router(notifications.router)
router.include_router(categories.router)
