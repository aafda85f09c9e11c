def column_order(storage, column_id):
    """Titles of a column's tasks in position order."""
    return [t.title for t in storage.list_tasks(column_id)]


def positions(storage, column_id):
    return {t.title: t.position for t in storage.list_tasks(column_id)}


def assert_dense(items):
    assert sorted(item.position for item in items) == list(range(len(items)))
