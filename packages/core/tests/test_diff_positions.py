"""Tests for unified-diff helpers used to anchor inline comments and fallback findings."""

from burgai_core.utils.diff import first_added_line, get_diff_positions, get_patch_line_content

TWO_HUNKS = """\
@@ -1,2 +1,3 @@
 context a
+added in hunk 1
 context b
@@ -10,2 +11,3 @@
 context c
+added in hunk 2
 context d"""


class TestGetDiffPositions:
    def test_added_line_maps_to_position_below_header(self):
        patch = "@@ -1,3 +1,4 @@\n line one\n+line two added\n line three\n line four"
        assert get_diff_positions(patch) == {2: 2}

    def test_positions_keep_counting_across_hunks(self):
        positions = get_diff_positions(TWO_HUNKS)
        assert positions[2] == 2
        # " context b" = 3, " context c" = 4, "+added in hunk 2" = 5 at new-file line 12
        assert positions[12] == 5

    def test_removed_line_takes_a_position_but_no_file_line(self):
        patch = "@@ -1,3 +1,2 @@\n context\n-removed line\n+added line"
        assert get_diff_positions(patch) == {2: 3}

    def test_only_removals(self):
        assert get_diff_positions("@@ -1,2 +1,1 @@\n context line\n-removed line") == {}

    def test_empty_patch(self):
        assert get_diff_positions("") == {}

    def test_unparseable_hunk_header_maps_nothing(self):
        assert get_diff_positions("@@ bad header @@\n+line one") == {}

    def test_single_line_hunk_header_without_counts(self):
        assert get_diff_positions("@@ -3 +3 @@\n-old\n+new") == {3: 2}


class TestGetPatchLineContent:
    PATCH = "@@ -1,3 +1,4 @@\n context\n-removed\n+added line\n context2\n"

    def test_added_line(self):
        assert get_patch_line_content(self.PATCH, 2) == "added line"

    def test_context_line(self):
        assert get_patch_line_content(self.PATCH, 1) == "context"

    def test_line_not_in_patch(self):
        assert get_patch_line_content(self.PATCH, 99) == ""

    def test_unparseable_header(self):
        assert get_patch_line_content("@@ oops @@\n+line", 1) == ""


class TestFirstAddedLine:
    def test_first_addition_across_hunks(self):
        assert first_added_line(TWO_HUNKS) == 2

    def test_later_hunk_only(self):
        patch = "@@ -40,2 +40,3 @@\n a\n b\n+c"
        assert first_added_line(patch) == 42

    def test_no_additions(self):
        assert first_added_line("@@ -1,2 +1,1 @@\n keep\n-drop") is None

    def test_missing_patch(self):
        assert first_added_line(None) is None
