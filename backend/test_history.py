from resume_coach.cover_letter.form_state import FormData
from resume_coach.cover_letter.history import FormHistory


def _data(name):
    return FormData(full_name=name)


def test_empty_history_has_no_cursor():
    history = FormHistory()
    assert history.cursor == -1
    assert history.current is None
    assert history.undo() is None
    assert history.redo() is None


def test_undo_and_redo_walk_the_log():
    history = FormHistory()
    for name in ('A', 'Ab', 'Abc'):
        history.record(_data(name))

    assert history.cursor == 2
    assert history.undo().data.full_name == 'Ab'
    assert history.undo().data.full_name == 'A'
    assert history.undo() is None
    assert history.cursor == 0

    assert history.redo().data.full_name == 'Ab'
    assert history.redo().data.full_name == 'Abc'
    assert history.redo() is None
    assert history.cursor == 2


def test_record_after_undo_discards_redo_entries():
    history = FormHistory()
    for name in ('A', 'B', 'C'):
        history.record(_data(name))
    history.undo()
    history.undo()

    history.record(_data('D'))

    assert [entry.data.full_name for entry in history.entries] == ['A', 'D']
    assert history.cursor == 1
    assert history.can_redo is False


def test_clear_resets_cursor():
    history = FormHistory()
    history.record(_data('A'))
    history.clear()
    assert len(history) == 0
    assert history.cursor == -1
