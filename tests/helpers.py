from inkpress.auth.jwt import create_access_token
from inkpress.schemas import ArticleCreate


def article_data(title="Async all the way", status="DRAFT", category="tech", content=None):
    return ArticleCreate(
        title=title,
        content=content or "Some content that is long enough.",
        category=category,
        status=status,
    )


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.username)}"}
