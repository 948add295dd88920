"""Unit tests for EventNormalizer."""
import re

import pytest

from records.errors import ValidationError
from records.event_normalizer import EventNormalizer
from records.models import EVENT_FIELDS


class TestGenerateSlug:
    """Test cases for slug derivation."""
    
    @pytest.mark.parametrize('title,expected', [
        ('PyCon Berlin 2025', 'pycon-berlin-2025'),
        ('  Hello,   World!  ', 'hello-world'),
        ('Rust -- and -- Python', 'rust-and-python'),
        ('--Leading and trailing--', 'leading-and-trailing'),
        ('AI/ML Summit: Day #1', 'aiml-summit-day-1'),
        ('snake_case stays', 'snake_case-stays'),
        ('Café Meetup', 'caf-meetup'),
    ])
    def test_generate_slug(self, title, expected):
        """Test slugs for a range of titles."""
        assert EventNormalizer.generate_slug(title) == expected
    
    @pytest.mark.parametrize('title', [
        'A  B', '- - -x- - -', 'Tabs\tand\nnewlines', '!!Wow!! -- so -- cool??',
        'Ünïcödé & ümlauts', 'already-a-slug',
    ])
    def test_slug_shape(self, title):
        """Test that slugs only hold word characters and single inner hyphens."""
        slug = EventNormalizer.generate_slug(title)
        
        assert re.fullmatch(r'[a-z0-9_-]*', slug)
        assert not slug.startswith('-')
        assert not slug.endswith('-')
        assert '--' not in slug
    
    def test_slug_is_deterministic(self):
        """Test that the same title always yields the same slug."""
        title = 'Data Engineering Day'
        assert EventNormalizer.generate_slug(title) == EventNormalizer.generate_slug(title)


class TestNormalizeTime:
    """Test cases for time normalization."""
    
    @pytest.mark.parametrize('value,expected', [
        ('12:00 AM', '00:00'),
        ('12:00 PM', '12:00'),
        ('1:05 PM', '13:05'),
        ('11:59 PM', '23:59'),
        ('9:30 am', '09:30'),
        ('7:15pm', '19:15'),
        ('0:00', '00:00'),
        ('9:05', '09:05'),
        ('23:59', '23:59'),
        ('  14:00  ', '14:00'),
    ])
    def test_valid_times(self, value, expected):
        """Test accepted 12-hour and 24-hour inputs."""
        assert EventNormalizer.normalize_time(value) == expected
    
    @pytest.mark.parametrize('value', [
        '25:00', '12:60', '13:00 AM', '0:30 PM', 'abc', '', '9', '9:5', '10:00:00', '10.30',
        '\u0661:\u0660\u0665 PM', '\u0660\u0669:\u0663\u0660',
    ])
    def test_invalid_times(self, value):
        """Test that malformed times are rejected rather than coerced."""
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer.normalize_time(value)
        
        assert 'time' in exc_info.value.errors


class TestNormalizeDate:
    """Test cases for date normalization."""
    
    @pytest.mark.parametrize('value', [
        '2025-11-05',
        '11/05/2025',
        '11-05-2025',
        'November 5, 2025',
        'Nov 5, 2025',
        '5 November 2025',
        '2025/11/05',
        '2025-11-05T10:00:00',
        '2025-11-05T10:00:00+00:00',
    ])
    def test_valid_dates(self, value):
        """Test that every accepted shape normalizes to YYYY-MM-DD."""
        assert EventNormalizer().normalize_date(value) == '2025-11-05'
    
    def test_european_date_when_not_a_us_date(self):
        """Test day-first dates that cannot be month-first."""
        assert EventNormalizer().normalize_date('25/12/2025') == '2025-12-25'
    
    def test_timestamp_with_offset_uses_utc_date(self):
        """Test that an offset timestamp resolves to its UTC calendar date."""
        assert EventNormalizer().normalize_date('2025-11-05T23:30:00-05:00') == '2025-11-06'
    
    @pytest.mark.parametrize('value', [
        'not-a-date', '2025-13-01', '2025-02-30', '', 'tomorrow',
    ])
    def test_invalid_dates(self, value):
        """Test that unparsable dates are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer().normalize_date(value)
        
        assert 'date' in exc_info.value.errors


class TestPrepare:
    """Test cases for the pre-save preparation of an event."""
    
    def test_prepare_new_event(self, event_fields):
        """Test that a new event gets a slug and canonical date/time."""
        record = EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        assert record['slug'] == 'pycon-berlin-2025'
        assert record['date'] == '2025-11-05'
        assert record['time'] == '09:30'
    
    def test_prepare_does_not_mutate_input(self, event_fields):
        """Test that the proposed record is left untouched."""
        original = dict(event_fields)
        EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        assert event_fields == original
    
    def test_prepare_trims_and_dedupes(self, event_fields):
        """Test trimming of free text and de-duplication of tags."""
        event_fields['venue'] = '  Hall A  '
        event_fields['tags'] = ['python', ' python ', 'web']
        
        record = EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        assert record['venue'] == 'Hall A'
        assert record['tags'] == ['python', 'web']
    
    def test_unchanged_fields_are_not_normalized(self, event_fields):
        """Test that only changed fields are transformed."""
        event_fields['slug'] = 'kept-slug'
        event_fields['date'] = '2025-11-05'
        event_fields['time'] = '09:30'
        event_fields['title'] = 'A Different Title'
        
        record = EventNormalizer().prepare(event_fields, changed={'venue'})
        
        assert record['slug'] == 'kept-slug'
        assert record['date'] == '2025-11-05'
        assert record['time'] == '09:30'
    
    def test_changed_title_recomputes_slug(self, event_fields):
        """Test that a title change derives a new slug."""
        event_fields['slug'] = 'old-slug'
        event_fields['title'] = 'Brand New Title'
        
        record = EventNormalizer().prepare(event_fields, changed={'title'})
        
        assert record['slug'] == 'brand-new-title'
    
    def test_all_invalid_fields_reported(self, event_fields):
        """Test that every offending field is reported in one error."""
        event_fields.update({
            'title': 'ab',
            'description': 'short',
            'mode': 'remote',
            'agenda': [],
            'tags': [],
            'venue': '   ',
            'time': '25:00',
        })
        
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        errors = exc_info.value.errors
        assert set(errors) == {'title', 'description', 'mode', 'agenda', 'tags', 'venue', 'time'}
        assert errors['title'] == 'Title must be at least 3 characters'
        assert errors['mode'] == 'Mode must be either online, offline, or hybrid'
    
    def test_title_too_long(self, event_fields):
        """Test the maximum title length."""
        event_fields['title'] = 'x' * 201
        
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        assert exc_info.value.errors == {'title': 'Title cannot exceed 200 characters'}
    
    def test_title_without_slug_characters(self, event_fields):
        """Test that a title producing an empty slug is rejected."""
        event_fields['title'] = '!!! ???'
        
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer().prepare(event_fields, changed=EVENT_FIELDS)
        
        assert 'title' in exc_info.value.errors
    
    def test_missing_required_fields(self):
        """Test that an empty submission reports every required field."""
        with pytest.raises(ValidationError) as exc_info:
            EventNormalizer().prepare({}, changed=EVENT_FIELDS)
        
        assert set(exc_info.value.errors) == set(EVENT_FIELDS)
        assert exc_info.value.errors['date'] == 'Date is required'
