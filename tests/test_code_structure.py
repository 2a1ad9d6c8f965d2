"""
Package layout checks
The importable code lives under src/, config and migrations stay at the root
"""

import os

import scoring_engine

ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..')


class TestCodeStructure:

    def test_package_imported_from_src(self):
        package_dir = os.path.dirname(os.path.abspath(scoring_engine.__file__))

        assert os.path.basename(os.path.dirname(package_dir)) == 'src'

    def test_no_top_level_package_copy(self):
        assert not os.path.exists(os.path.join(ROOT, 'scoring_engine'))

    def test_root_entry_points(self):
        for path in ['run_standalone.py', 'config/scoring_config.py', 'migrations/env.py',
                     'scripts/rebuild_segments.py']:
            assert os.path.exists(os.path.join(ROOT, path)), path
