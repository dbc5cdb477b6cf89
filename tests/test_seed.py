import json

import pytest

from module_anatomy.exceptions import AnatomyValidationError, SeedError
from module_anatomy.models import Anatomy, Position
from module_anatomy.seeds import AnatomySeeder
from module_anatomy.utils.dental_utils import element_id_for, quadrant_position


class TestAnatomySeeder:
    """Seeding the packaged reference data."""

    def test_seed_packaged_files(self, app):
        report = AnatomySeeder().run()
        assert report.ok
        assert {entry['flag'] for entry in report.seeded} == {'HeadToToe', 'DentalAnatomy'}

        regions = Anatomy.query.filter_by(flag='HeadToToe').roots().ordered().all()
        assert regions[0].name == 'Head and Neck'
        assert [r.ordering for r in regions] == list(range(1, len(regions) + 1))

    def test_head_to_toe_keeps_its_flag(self, app):
        report = AnatomySeeder().run(['head_to_toe.json'])
        assert all(entry['effective_flag'] == 'Anatomy' for entry in report.seeded)
        assert Anatomy.query.filter_by(flag='HeadToToe', parent_id=None).count() == len(report.seeded)

    def test_dental_chart(self, app):
        AnatomySeeder().run(['dental_chart.json'])
        root = Anatomy.query.filter_by(flag='DentalAnatomy', parent_id=None).one()
        teeth = root.children
        assert len(teeth) == 52

        numbers = [int(t.element_id.split('_')[1]) for t in teeth]
        assert len([n for n in numbers if n < 50]) == 32
        assert len([n for n in numbers if n > 50]) == 20
        for tooth, number in zip(teeth, numbers):
            assert tooth.flag == 'DentalAnatomy'
            assert tooth.element_id == element_id_for(number)
            assert tooth.position is quadrant_position(number)
        assert sum(1 for t in teeth if t.position is Position.UPPER) == 26

    def test_seeding_twice_creates_no_duplicates(self, app):
        AnatomySeeder().run()
        first = Anatomy.query.count()
        report = AnatomySeeder().run()
        assert report.ok
        assert Anatomy.query.count() == first

    def test_malformed_descriptor_aborts_run(self, app):
        with pytest.raises(SeedError):
            AnatomySeeder().seed([{'name': 'Good', 'flag': 'Anatomy'}, {'name': 'No flag'}])
        assert Anatomy.query.count() == 0

    def test_failing_branch_is_isolated(self, app):
        descriptors = [
            {'name': 'Broken', 'flag': 'Anatomy', 'children': [{'label': 'nameless'}]},
            {'name': 'Fine', 'flag': 'Anatomy'},
        ]
        report = AnatomySeeder().seed(descriptors)
        assert not report.ok
        assert [entry['name'] for entry in report.failed] == ['Broken']
        assert [entry['name'] for entry in report.seeded] == ['Fine']
        assert [a.name for a in Anatomy.query.all()] == ['Fine']
        assert Anatomy.query.filter_by(name='Fine').one().ordering == 2

    def test_strict_reraises(self, app):
        with pytest.raises(AnatomyValidationError):
            AnatomySeeder(strict=True).seed([{'name': 'Broken', 'flag': 'DentalAnatomy', 'element_id': 'Molar_99'}])

    def test_seed_file_from_directory(self, app, tmp_path):
        (tmp_path / 'extra.json').write_text(json.dumps({'name': 'Spleen', 'flag': 'Anatomy'}))
        report = AnatomySeeder(data_dir=str(tmp_path)).run(['extra.json'])
        assert report.ok
        assert Anatomy.query.filter_by(name='Spleen').count() == 1

    def test_missing_or_invalid_file(self, app, tmp_path):
        (tmp_path / 'broken.json').write_text('{not json')
        seeder = AnatomySeeder(data_dir=str(tmp_path))
        with pytest.raises(SeedError):
            seeder.run(['missing.json'])
        with pytest.raises(SeedError):
            seeder.run(['broken.json'])


class TestSeedCommands:
    """CLI surface for seeding and install."""

    def test_seed_command(self, runner):
        result = runner.invoke(args=['seed', '--file', 'dental_chart.json'])
        assert result.exit_code == 0, result.output
        assert 'Seeded DentalAnatomy' in result.output
        assert Anatomy.query.filter_by(flag='DentalAnatomy').count() == 53

    def test_install_command(self, runner):
        result = runner.invoke(args=['install'])
        assert result.exit_code == 0, result.output
        assert 'Install complete.' in result.output
        assert Anatomy.query.filter_by(flag='HeadToToe').count() > 0

    def test_install_without_seed(self, runner):
        result = runner.invoke(args=['install', '--no-seed'])
        assert result.exit_code == 0, result.output
        assert Anatomy.query.count() == 0

    def test_seed_command_reports_malformed_file(self, runner, app, tmp_path):
        (tmp_path / 'bad.json').write_text(json.dumps([{'label': 'nameless'}]))
        result = runner.invoke(args=['seed', '--file', str(tmp_path / 'bad.json')])
        assert result.exit_code != 0
        assert 'Seeding aborted' in result.output
