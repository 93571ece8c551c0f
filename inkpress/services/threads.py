from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from inkpress.models import Comment
from inkpress.schemas import ThreadedComment


def _sort_key(comment: Comment):
    return (comment.created_at, comment.id)


def build_thread(comments: Iterable[Comment], max_depth: Optional[int] = None) -> List[ThreadedComment]:
    """
    Turn a flat list of comments into reply trees.

    Roots are the comments without a parent; siblings are ordered oldest first
    with id as the tie-breaker. Replies whose ancestors are not in the list are
    dropped. max_depth counts reply levels below a root (0 keeps roots only);
    None means unbounded. Each comment is emitted at most once, so malformed
    parent links cannot loop.
    """
    children: Dict[Optional[int], List[Comment]] = defaultdict(list)
    for comment in comments:
        children[comment.parent_id].append(comment)
    for siblings in children.values():
        siblings.sort(key=_sort_key)

    visited = set()
    roots: List[ThreadedComment] = []
    stack = []

    for comment in children.get(None, []):
        visited.add(comment.id)
        node = ThreadedComment.model_validate(comment)
        roots.append(node)
        stack.append((comment.id, node, 0))

    while stack:
        comment_id, node, depth = stack.pop()
        if max_depth is not None and depth >= max_depth:
            continue
        for child in children.get(comment_id, []):
            if child.id in visited:
                continue
            visited.add(child.id)
            child_node = ThreadedComment.model_validate(child)
            node.replies.append(child_node)
            stack.append((child.id, child_node, depth + 1))

    return roots
