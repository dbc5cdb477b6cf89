import pytest

from module_anatomy.exceptions import AnatomyValidationError
from module_anatomy.models import Anatomy, Position, ToothType
from module_anatomy.schemas import DentalAnatomyData
from module_anatomy.services import DentalAnatomyService
from module_anatomy.utils.dental_utils import (
    element_id_for,
    is_valid_tooth_number,
    parse_element_id,
    quadrant_position,
    tooth_type,
)


class TestFdiNotation:
    """FDI tooth number helpers."""

    @pytest.mark.parametrize('number,expected', [
        (11, ToothType.INCISOR), (13, ToothType.CANINE), (14, ToothType.PREMOLAR),
        (18, ToothType.MOLAR), (54, ToothType.MOLAR), (63, ToothType.CANINE), (72, ToothType.INCISOR),
    ])
    def test_tooth_type(self, number, expected):
        assert tooth_type(number) is expected

    def test_quadrant_positions(self):
        assert [quadrant_position(n) for n in (11, 21, 55, 65)] == [Position.UPPER] * 4
        assert [quadrant_position(n) for n in (31, 48, 71, 85)] == [Position.LOWER] * 4

    def test_valid_numbers(self):
        assert is_valid_tooth_number(48)
        assert is_valid_tooth_number(85)
        assert not is_valid_tooth_number(56)
        assert not is_valid_tooth_number(19)
        assert not is_valid_tooth_number(91)

    def test_element_ids(self):
        assert element_id_for(36) == 'Molar_36'
        assert parse_element_id('Premolar_24') == ('Premolar', 24)
        assert parse_element_id('Premolar-24') is None
        assert parse_element_id('') is None


class TestDentalAnatomyService:
    """Dental store normalisation and validation."""

    def test_flag_defaults_to_dental(self, dental_service):
        dto = dental_service.load_data({'name': 'Teeth'})
        assert isinstance(dto, DentalAnatomyData)
        assert dto.flag == 'DentalAnatomy'
        entity = dental_service.prepare_store(dto)
        assert entity.flag == 'DentalAnatomy'

    def test_children_default_to_dental_flag(self, dental_service):
        root = dental_service.prepare_store_dental_anatomy({
            'name': 'Teeth', 'children': [{'name': 'Tooth 11', 'element_id': 'Incisor_11'}],
        })
        assert [c.flag for c in root.children] == ['DentalAnatomy']

    def test_position_derived_and_casing_normalised(self, dental_service):
        root = dental_service.prepare_store_dental_anatomy({
            'name': 'Teeth',
            'children': [
                {'name': 'Tooth 18', 'element_id': 'molar_18'},
                {'name': 'Tooth 75', 'element_id': 'MOLAR_75', 'position': 'LOWER'},
            ],
        })
        teeth = {c.name: c for c in root.children}
        assert teeth['Tooth 18'].element_id == 'Molar_18'
        assert teeth['Tooth 18'].position is Position.UPPER
        assert teeth['Tooth 75'].element_id == 'Molar_75'
        assert teeth['Tooth 75'].position is Position.LOWER

    @pytest.mark.parametrize('tooth', [
        {'name': 'Bad format', 'element_id': 'Molar18'},
        {'name': 'Not a tooth', 'element_id': 'Molar_19'},
        {'name': 'Wrong type', 'element_id': 'Incisor_18'},
        {'name': 'Wrong jaw', 'element_id': 'Molar_18', 'position': 'lower'},
        {'name': 'Bad position', 'element_id': 'Molar_18', 'position': 'middle'},
    ])
    def test_invalid_teeth_are_rejected(self, dental_service, tooth):
        with pytest.raises(AnatomyValidationError):
            dental_service.prepare_store_dental_anatomy({'name': 'Teeth', 'children': [tooth]})
        assert Anatomy.query.count() == 0

    def test_generic_schema_does_not_check_teeth(self, anatomy_service):
        dto = anatomy_service.load_data({'name': 'Odd', 'element_id': 'Molar_19'})
        assert dto.element_id == 'Molar_19'

    def test_dental_cache_descriptor(self):
        descriptor = DentalAnatomyService.cache_descriptors['index']
        assert descriptor.name == 'dental_anatomy'
        assert descriptor.tags == frozenset({'dental_anatomy', 'dental_anatomy-index'})
        assert descriptor.duration == 24 * 60

    def test_dental_write_keeps_generic_tags(self, anatomy_service, dental_service):
        before = {tag: anatomy_service.cache.tag_version(tag) for tag in ('anatomy', 'anatomy-index')}
        dental_service.prepare_store_dental_anatomy({'name': 'Teeth'})
        after = {tag: anatomy_service.cache.tag_version(tag) for tag in ('anatomy', 'anatomy-index')}
        assert after == before
