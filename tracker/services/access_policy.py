"""
Who may see or change a project.

Both functions accept a stored ``Project`` or a cached ``ProjectResponse``
(anything with ``owner_id`` and ``members`` carrying ``id``), and any user
object with an ``id``.
"""


def can_read(project, user) -> bool:
    """Owner and members may read."""
    if user.id == project.owner_id:
        return True
    return any(member.id == user.id for member in project.members)


def can_write(project, user) -> bool:
    """Only the owner may change or delete; members stay read-only."""
    return user.id == project.owner_id

