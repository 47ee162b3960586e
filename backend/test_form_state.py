import pytest

from resume_coach.cover_letter.form_state import (
    FIELD_TOOLTIPS,
    FormData,
    FormStateStore,
    MAX_CHARS,
    TONE_DESCRIPTIONS,
    Tone,
    validate_form,
)


def test_update_replaces_single_field_and_notifies():
    store = FormStateStore()
    seen = []
    store.on_change(lambda data, restored: seen.append((data, restored)))

    assert store.update('company_name', 'Acme') is True

    assert store.data.company_name == 'Acme'
    assert store.data.full_name == ''
    assert len(seen) == 1
    assert seen[0][0].company_name == 'Acme'
    assert seen[0][1] is False


def test_update_keeps_previous_snapshot_unchanged():
    store = FormStateStore()
    before = store.data
    store.update('job_title', 'Engineer')
    assert before.job_title == ''
    assert store.data is not before


def test_over_limit_job_description_is_ignored():
    store = FormStateStore()
    seen = []
    store.on_change(lambda data, restored: seen.append(data))

    assert store.update('job_description', 'x' * MAX_CHARS['job_description']) is True
    assert store.update('job_description', 'y' * (MAX_CHARS['job_description'] + 1)) is False

    assert store.data.job_description == 'x' * 5000
    assert len(seen) == 1


def test_over_limit_relevant_experience_is_ignored():
    store = FormStateStore()
    assert store.update('relevant_experience', 'z' * 1501) is False
    assert store.data.relevant_experience == ''


def test_tone_accepts_known_values_only():
    store = FormStateStore()
    assert store.update('tone', 'confident') is True
    assert store.data.tone is Tone.CONFIDENT

    assert store.update('tone', 'sarcastic') is False
    assert store.data.tone is Tone.CONFIDENT


def test_unknown_field_raises():
    store = FormStateStore()
    with pytest.raises(KeyError):
        store.update('favourite_colour', 'blue')


def test_replace_marks_change_as_restored():
    store = FormStateStore()
    seen = []
    store.on_change(lambda data, restored: seen.append(restored))
    store.replace(FormData(full_name='Ada'))
    assert store.data.full_name == 'Ada'
    assert seen == [True]


def test_has_content_ignores_tone():
    assert FormData().has_content() is False
    assert FormData(tone=Tone.HUMBLE).has_content() is False
    assert FormData(phone='1').has_content() is True


def test_validate_form_reports_each_problem():
    errors = validate_form(FormData(full_name='A', email='not-an-email', phone='123'))
    assert errors == {
        'full_name': 'Name must be at least 2 characters',
        'email': 'Please enter a valid email address',
        'phone': 'Please enter a valid phone number',
    }


def test_validate_form_accepts_valid_or_blank_optionals():
    assert validate_form(FormData(full_name='Ada Lovelace')) == {}
    assert validate_form(
        FormData(full_name='Ada Lovelace', email='ada@example.com', phone='+44 (20) 7946-0958')
    ) == {}


def test_every_field_and_tone_has_help_text():
    assert set(FIELD_TOOLTIPS) == set(FormData.model_fields)
    assert set(TONE_DESCRIPTIONS) == set(Tone)
