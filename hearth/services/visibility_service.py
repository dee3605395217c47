from hearth.db.models import Expense, House, Note, User


def visible_houses(houses: tuple[House, ...], user: User | None) -> tuple[House, ...]:
    if user is None:
        return ()
    if user.is_admin:
        return houses
    assigned = set(user.assigned_house_ids)
    return tuple(h for h in houses if h.id in assigned)


def visible_expenses(expenses: tuple[Expense, ...], user: User | None) -> tuple[Expense, ...]:
    if user is None:
        return ()
    if user.is_admin:
        return expenses
    assigned = set(user.assigned_house_ids)
    return tuple(e for e in expenses if e.house_id in assigned)


def visible_notes(notes: tuple[Note, ...], user: User | None) -> tuple[Note, ...]:
    if user is None:
        return ()
    if user.is_admin:
        return notes
    assigned = set(user.assigned_house_ids)
    return tuple(n for n in notes if n.house_id in assigned)
