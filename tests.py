#!/usr/bin/env python3

import io
import logging
import os
import pickle
import sys
import tempfile
from unittest import mock
import unittest
import mdtree
import mdtree.io as mio
import mdtree.run as mrun
import mdtree.parser as mp


SIMPLE = ('- **Q:** Did you send the email?\n'
          '  - **IF:** "Yes"\n'
          '    - **Q:** Why did you copy the competitor?\n'
          '  - **IF:** "No"\n'
          '    - **Q:** How is that possible?\n')

NESTED = ('- **Q:** A\n'
          '  - **IF:** x\n'
          '    - **Q:** B\n'
          '      - **IF:** y\n'
          '        - **Q:** C\n'
          '  - **IF:** z\n'
          '    - **Q:** D\n')

WITNESS = ('# Witness Testimony\n'
           '\n'
           '- **Q:** Who was present at the meeting on June 12th?\n'
           '  - **IF:** "I don\'t recall"\n'
           '    - **Q:** Is there a document that would refresh your recollection?\n'
           '      - **IF:** "Yes"\n'
           '        - **Q:** Showing Exhibit A, does this refresh your memory?\n'
           '      - **IF:** "No"\n'
           '        - **Q:** Have you made any attempts to recall the attendees?\n'
           '  - **IF:** "Just me and Mr. Smith"\n'
           '    - **Q:** Was anyone joining via phone?\n'
           '  - **IF:** "Me, Mr. Smith, and Ms. Jones"\n'
           '    - **Q:** Let\'s focus on Ms. Jones. What was her demeanor?\n')

TOPICS = ('# Main\n'
          '## Sub\n'
          '- **Q:** S\n'
          '### Deep\n'
          '- **Q:** D\n'
          '## Sub2\n'
          '- **Q:** S2\n'
          '# Other\n'
          '- **Q:** O\n')


class TestParseError(unittest.TestCase):

    def test_message_includes_line(self):
        e = mp.ParseError("Something broke",3)
        self.assertEqual("Something broke (line 3)", str(e))

    def test_exposes_bare_message(self):
        e = mp.ParseError("Something broke",3)
        self.assertEqual("Something broke", e.message)
        self.assertEqual(3, e.line_number)

    def test_document_errors_use_line_zero(self):
        e = mp.EmptyDocument()
        self.assertEqual(0, e.line_number)
        self.assertEqual("Document must contain at least one Q-node (line 0)", str(e))

    def test_line_number_readonly(self):
        e = mp.TabCharacter(2)
        with self.assertRaises(AttributeError):
            e.line_number = 5

    def test_kinds_are_distinct(self):
        kinds = [ cls.kind for cls in (mp.EmptyDocument,mp.MissingFinalNewline,
            mp.TabCharacter,mp.InvalidIndent,mp.EmptyMarkerText,
            mp.UnbalancedBoldMarkers,mp.InvalidMarkerCase,mp.UnknownMarker,
            mp.MissingMarker,mp.InvalidLineFormat,mp.InvalidHeadingFormat,
            mp.ConditionAtTopLevel,mp.OrphanedQuestion,mp.OrphanedCondition,
            mp.QuestionUnderQuestion,mp.ConditionUnderCondition) ]
        self.assertEqual(len(kinds), len(set(kinds)))

    def test_heading_format_is_line_format(self):
        self.assertTrue( issubclass(mp.InvalidHeadingFormat,mp.InvalidLineFormat) )

    def test_exported_from_package(self):
        self.assertIs(mp.ParseError, mdtree.ParseError)

    def test_pickles_every_kind(self):
        errors = [ mp.ParseError("Something broke",3), mp.EmptyDocument(),
            mp.MissingFinalNewline(), mp.TabCharacter(2), mp.InvalidIndent(3,4),
            mp.EmptyMarkerText("Q",5), mp.UnbalancedBoldMarkers(6),
            mp.InvalidMarkerCase(7), mp.UnknownMarker("NOTE",8),
            mp.MissingMarker(9), mp.InvalidLineFormat(10),
            mp.InvalidHeadingFormat(11), mp.ConditionAtTopLevel(12),
            mp.OrphanedQuestion(13), mp.OrphanedCondition(14),
            mp.QuestionUnderQuestion(15), mp.ConditionUnderCondition(16) ]
        for e in errors:
            copy = pickle.loads(pickle.dumps(e))
            self.assertIs(type(e), type(copy))
            self.assertEqual(e.kind, copy.kind)
            self.assertEqual(e.line_number, copy.line_number)
            self.assertEqual(e.message, copy.message)
            self.assertEqual(str(e), str(copy))
            self.assertEqual(e.args, copy.args)

    def test_pickle_keeps_details(self):
        copy = pickle.loads(pickle.dumps(mp.InvalidIndent(3,4)))
        self.assertEqual(3, copy.spaces)
        copy = pickle.loads(pickle.dumps(mp.EmptyMarkerText("IF",5)))
        self.assertEqual("IF", copy.marker)
        copy = pickle.loads(pickle.dumps(mp.UnknownMarker("NOTE",8)))
        self.assertEqual("NOTE", copy.word)

    def test_pickles_raised_error(self):
        with self.assertRaises(mp.ParseError) as cm:
            mp.parse("- **Q:** A\n   - **IF:** x\n")
        copy = pickle.loads(pickle.dumps(cm.exception))
        self.assertIsInstance(copy, mp.InvalidIndent)
        self.assertEqual(2, copy.line_number)
        self.assertEqual(str(cm.exception), str(copy))


class TestBlankLine(unittest.TestCase):

    def test_parses_empty(self):
        l = mp.BlankLine.parse("",4)
        self.assertEqual("blank", l.kind)
        self.assertEqual(4, l.number)

    def test_parses_spaces(self):
        self.assertIsNotNone( mp.BlankLine.parse("     ",1) )

    def test_rejects_text(self):
        self.assertIsNone( mp.BlankLine.parse("  x",1) )


class TestHeadingLine(unittest.TestCase):

    def test_parses_level_and_text(self):
        l = mp.HeadingLine.parse("### Some Topic",7)
        self.assertEqual("heading", l.kind)
        self.assertEqual(3, l.level)
        self.assertEqual("Some Topic", l.text)
        self.assertEqual(7, l.number)

    def test_parses_all_levels(self):
        for n in range(1,7):
            self.assertEqual(n, mp.HeadingLine.parse("#"*n+" T",1).level)

    def test_rejects_seven_hashes(self):
        self.assertIsNone( mp.HeadingLine.parse("####### T",1) )

    def test_requires_space(self):
        self.assertIsNone( mp.HeadingLine.parse("#T",1) )

    def test_requires_text(self):
        self.assertIsNone( mp.HeadingLine.parse("# ",1) )

    def test_requires_column_zero(self):
        self.assertIsNone( mp.HeadingLine.parse(" # T",1) )


class TestListItemLine(unittest.TestCase):

    def test_returns_none_for_non_list(self):
        self.assertIsNone( mp.ListItemLine.parse("text",1) )

    def test_parses_question(self):
        l = mp.ListItemLine.parse("- **Q:** Why?",2)
        self.assertTrue( isinstance(l,mp.QuestionLine) )
        self.assertEqual("question", l.kind)
        self.assertEqual(0, l.level)
        self.assertEqual("Why?", l.text)
        self.assertEqual(2, l.number)

    def test_parses_condition(self):
        l = mp.ListItemLine.parse('  - **IF:** "Yes"',3)
        self.assertTrue( isinstance(l,mp.ConditionLine) )
        self.assertEqual(1, l.level)
        self.assertEqual('"Yes"', l.text)

    def test_indent_level_is_half_spaces(self):
        self.assertEqual(4, mp.ListItemLine.parse("        - **Q:** x",1).level)

    def test_accepts_marker_without_space(self):
        self.assertEqual("NoSpace", mp.ListItemLine.parse("- **Q:**NoSpace",1).text)

    def test_trims_text(self):
        self.assertEqual("Padded", mp.ListItemLine.parse("- **IF:**   Padded   ",1).text)

    def test_odd_indent_reports_spaces(self):
        for n in (1,3,5,7):
            with self.assertRaises(mp.InvalidIndent) as cm:
                mp.ListItemLine.parse(" "*n+"- **Q:** x",6)
            self.assertEqual(n, cm.exception.spaces)
            self.assertEqual(6, cm.exception.line_number)
            self.assertEqual("Indent must be multiple of 2 spaces (got %d spaces)" % n,
                cm.exception.message)

    def test_empty_question_text(self):
        with self.assertRaises(mp.EmptyMarkerText) as cm:
            mp.ListItemLine.parse("- **Q:**",1)
        self.assertEqual("**Q:** marker requires non-empty text", cm.exception.message)

    def test_whitespace_question_text(self):
        with self.assertRaises(mp.EmptyMarkerText):
            mp.ListItemLine.parse("- **Q:**    ",1)

    def test_empty_condition_text(self):
        with self.assertRaises(mp.EmptyMarkerText) as cm:
            mp.ListItemLine.parse("  - **IF:**",1)
        self.assertEqual("IF", cm.exception.marker)
        self.assertEqual("**IF:** marker requires non-empty text", cm.exception.message)

    def test_bold_in_text(self):
        with self.assertRaises(mp.UnbalancedBoldMarkers):
            mp.ListItemLine.parse("- **Q:** What about **bold** text?",1)

    def test_bold_in_condition_text(self):
        with self.assertRaises(mp.UnbalancedBoldMarkers):
            mp.ListItemLine.parse("  - **IF:** a ** b",1)

    def test_lowercase_q(self):
        with self.assertRaises(mp.InvalidMarkerCase) as cm:
            mp.ListItemLine.parse("- **q:** Text",1)
        self.assertEqual("Markers must be exactly **Q:** or **IF:** (case-sensitive)",
            cm.exception.message)

    def test_mixed_case_if(self):
        for marker in ("if","If","iF"):
            with self.assertRaises(mp.InvalidMarkerCase):
                mp.ListItemLine.parse("  - **%s:** Answer" % marker,1)

    def test_unknown_marker(self):
        with self.assertRaises(mp.UnknownMarker) as cm:
            mp.ListItemLine.parse("- **OTHER:** Text",1)
        self.assertEqual("OTHER", cm.exception.word)
        self.assertEqual("Unknown bold marker (got: **OTHER:**)", cm.exception.message)

    def test_missing_marker(self):
        with self.assertRaises(mp.MissingMarker) as cm:
            mp.ListItemLine.parse("- Invalid item",1)
        self.assertEqual("List item must start with **Q:** or **IF:**", cm.exception.message)

    def test_missing_marker_text_only_dash(self):
        with self.assertRaises(mp.MissingMarker):
            mp.ListItemLine.parse("- ",1)


class TestClassifyLines(unittest.TestCase):

    def test_classifies_in_order(self):
        lines = mp.classify_lines("- **Q:** X\n\n# H\n  - **IF:** y\n")
        self.assertEqual(["question","blank","heading","condition"],
            [ l.kind for l in lines ])
        self.assertEqual([1,2,3,4], [ l.number for l in lines ])

    def test_ignores_segment_after_final_newline(self):
        self.assertEqual(1, len(mp.classify_lines("- **Q:** X\n")))

    def test_empty_input(self):
        with self.assertRaises(mp.EmptyDocument) as cm:
            mp.classify_lines("")
        self.assertEqual(0, cm.exception.line_number)

    def test_missing_final_newline(self):
        with self.assertRaises(mp.MissingFinalNewline) as cm:
            mp.classify_lines("- **Q:** X")
        self.assertEqual("Document must end with newline character (line 0)",
            str(cm.exception))

    def test_newline_checked_before_tabs(self):
        with self.assertRaises(mp.MissingFinalNewline):
            mp.classify_lines("\t- **Q:** X")

    def test_tab(self):
        with self.assertRaises(mp.TabCharacter) as cm:
            mp.classify_lines("- **Q:** Question\n\t- **IF:** Answer\n")
        self.assertEqual(2, cm.exception.line_number)
        self.assertEqual("Tabs are not allowed; use spaces only", cm.exception.message)

    def test_tabs_found_before_line_errors(self):
        with self.assertRaises(mp.TabCharacter) as cm:
            mp.classify_lines("   - **Q:** x\nstray\tword\n")
        self.assertEqual(2, cm.exception.line_number)

    def test_tab_inside_text(self):
        with self.assertRaises(mp.TabCharacter):
            mp.classify_lines("- **Q:** a\tb\n")

    def test_crlf(self):
        lines = mp.classify_lines("- **Q:** First?\r\n  - **IF:** \"Yes\"\r\n")
        self.assertEqual(2, len(lines))
        self.assertEqual("First?", lines[0].text)
        self.assertEqual('"Yes"', lines[1].text)

    def test_stray_text(self):
        with self.assertRaises(mp.InvalidLineFormat) as cm:
            mp.classify_lines("- **Q:** X\nStray text\n")
        self.assertEqual(2, cm.exception.line_number)
        self.assertEqual("Invalid line format (line 2)", str(cm.exception))

    def test_malformed_heading(self):
        for text in ("#Topic\n","####### Seven\n","# \n"):
            with self.assertRaises(mp.InvalidLineFormat) as cm:
                mp.classify_lines(text)
            self.assertTrue( isinstance(cm.exception,mp.InvalidHeadingFormat) )
            self.assertEqual("Invalid heading format", cm.exception.message)

    def test_indented_heading(self):
        with self.assertRaises(mp.InvalidLineFormat) as cm:
            mp.classify_lines(" # Topic\n")
        self.assertFalse( isinstance(cm.exception,mp.InvalidHeadingFormat) )

    def test_first_bad_line_wins(self):
        with self.assertRaises(mp.InvalidMarkerCase) as cm:
            mp.classify_lines("- **Q:** Valid\n- **q:** Invalid\n- **OTHER:** x\n")
        self.assertEqual(2, cm.exception.line_number)
        self.assertIn("line 2", str(cm.exception))


class TestTreeBuilder(unittest.TestCase):

    def build(self,*lines):
        b = mp.TreeBuilder()
        for l in lines:
            b.feed(l)
        return b.document

    def test_starts_empty(self):
        d = mp.TreeBuilder().document
        self.assertEqual([], d.questions)
        self.assertEqual([], d.topics)

    def test_blank_is_noop(self):
        d = self.build(
            mp.QuestionLine(1,0,"A"),
            mp.BlankLine(2),
            mp.ConditionLine(3,1,"x"),
            mp.BlankLine(4),
            mp.QuestionLine(5,2,"B") )
        self.assertEqual("B", d.questions[0].conditions[0].questions[0].text)

    def test_top_level_question_is_orphan(self):
        d = self.build( mp.QuestionLine(1,0,"A"), mp.QuestionLine(2,0,"B") )
        self.assertEqual(["A","B"], [ q.text for q in d.questions ])

    def test_question_goes_to_current_topic(self):
        d = self.build( mp.HeadingLine(1,1,"T"), mp.QuestionLine(2,0,"A") )
        self.assertEqual([], d.questions)
        self.assertEqual("A", d.topics[0].questions[0].text)

    def test_sub_heading_nests(self):
        d = self.build( mp.HeadingLine(1,1,"T"), mp.HeadingLine(2,3,"U") )
        self.assertEqual(1, len(d.topics))
        self.assertEqual("U", d.topics[0].topics[0].title)

    def test_equal_heading_closes_topic(self):
        d = self.build( mp.HeadingLine(1,2,"T"), mp.HeadingLine(2,2,"U") )
        self.assertEqual(["T","U"], [ t.title for t in d.topics ])

    def test_lesser_heading_closes_chain(self):
        d = self.build( mp.HeadingLine(1,2,"T"), mp.HeadingLine(2,3,"U"),
            mp.HeadingLine(3,1,"V") )
        self.assertEqual(["T","V"], [ t.title for t in d.topics ])
        self.assertEqual([], d.topics[1].topics)

    def test_heading_closes_question_chain(self):
        with self.assertRaises(mp.OrphanedCondition) as cm:
            self.build( mp.QuestionLine(1,0,"A"), mp.HeadingLine(2,1,"T"),
                mp.ConditionLine(3,1,"x") )
        self.assertEqual(3, cm.exception.line_number)

    def test_condition_at_top_level(self):
        with self.assertRaises(mp.ConditionAtTopLevel) as cm:
            self.build( mp.ConditionLine(1,0,"x") )
        self.assertEqual("**IF:** node cannot appear at indent level 0 (line 1)",
            str(cm.exception))

    def test_orphaned_question(self):
        with self.assertRaises(mp.OrphanedQuestion) as cm:
            self.build( mp.QuestionLine(1,1,"A") )
        self.assertEqual(1, cm.exception.line_number)

    def test_orphaned_condition(self):
        with self.assertRaises(mp.OrphanedCondition):
            self.build( mp.HeadingLine(1,1,"T"), mp.ConditionLine(2,2,"x") )

    def test_question_under_question(self):
        with self.assertRaises(mp.QuestionUnderQuestion) as cm:
            self.build( mp.QuestionLine(1,0,"A"), mp.QuestionLine(2,1,"B") )
        self.assertEqual(2, cm.exception.line_number)

    def test_condition_under_condition(self):
        with self.assertRaises(mp.ConditionUnderCondition) as cm:
            self.build( mp.QuestionLine(1,0,"A"), mp.ConditionLine(2,1,"x"),
                mp.ConditionLine(3,2,"y") )
        self.assertEqual(3, cm.exception.line_number)

    def test_dedent_returns_to_enclosing_question(self):
        d = self.build(
            mp.QuestionLine(1,0,"A"),
            mp.ConditionLine(2,1,"x"),
            mp.QuestionLine(3,2,"B"),
            mp.ConditionLine(4,3,"y"),
            mp.QuestionLine(5,4,"C"),
            mp.ConditionLine(6,1,"z") )
        a = d.questions[0]
        self.assertEqual(["x","z"], [ c.answer for c in a.conditions ])
        self.assertEqual(["y"], [ c.answer for c in a.conditions[0].questions[0].conditions ])

    def test_does_not_assign_identifiers(self):
        d = self.build( mp.QuestionLine(1,0,"A") )
        self.assertIsNone(d.questions[0].id)


class TestBuildTree(unittest.TestCase):

    def test_headings_only_is_empty(self):
        with self.assertRaises(mp.EmptyDocument) as cm:
            mp.build_tree([ mp.HeadingLine(1,1,"T"), mp.HeadingLine(2,2,"U") ])
        self.assertEqual(0, cm.exception.line_number)

    def test_blank_only_is_empty(self):
        with self.assertRaises(mp.EmptyDocument):
            mp.build_tree([ mp.BlankLine(1) ])

    def test_nested_topic_question_counts(self):
        d = mp.build_tree([ mp.HeadingLine(1,1,"T"), mp.HeadingLine(2,2,"U"),
            mp.QuestionLine(3,0,"A") ])
        self.assertEqual(1, d.question_count)


class TestAssignIdentifiers(unittest.TestCase):

    def test_numbers_preorder(self):
        b = mp.QuestionNode("b",3)
        c = mp.QuestionNode("c",5)
        a = mp.QuestionNode("a",1,[ mp.ConditionNode("x",2,[b]),
            mp.ConditionNode("y",4,[c]) ])
        t = mp.QuestionNode("t",7)
        d = mp.Document([a],[ mp.Topic(1,"T",6,[t]) ])
        mp.assign_identifiers(d)
        self.assertEqual(["Q1","Q2","Q3","Q4"], [ q.id for q in (a,b,c,t) ])

    def test_topic_questions_before_subtopics(self):
        sub = mp.QuestionNode("sub",3)
        own = mp.QuestionNode("own",4)
        d = mp.Document([],[ mp.Topic(1,"T",1,[own],[ mp.Topic(2,"U",2,[sub]) ]) ])
        mp.assign_identifiers(d)
        self.assertEqual("Q1", own.id)
        self.assertEqual("Q2", sub.id)


class TestNodes(unittest.TestCase):

    def test_kinds(self):
        self.assertEqual("question", mp.QuestionNode("a",1).kind)
        self.assertEqual("condition", mp.ConditionNode("a",1).kind)
        self.assertEqual("topic", mp.Topic(1,"a",1).kind)

    def test_attributes_readonly(self):
        q = mp.QuestionNode("a",1)
        with self.assertRaises(AttributeError):
            q.text = "b"
        with self.assertRaises(AttributeError):
            q.id = "Q9"

    def test_children_immutable(self):
        c = mp.ConditionNode("x",2)
        q = mp.QuestionNode("a",1,[c])
        q.conditions.append(mp.ConditionNode("y",3))
        q.conditions[0] = None
        self.assertEqual([c], q.conditions)

    def test_value_equality(self):
        self.assertEqual( mp.QuestionNode("a",1,[mp.ConditionNode("x",2)],"Q1"),
            mp.QuestionNode("a",1,[mp.ConditionNode("x",2)],"Q1") )
        self.assertNotEqual( mp.QuestionNode("a",1), mp.QuestionNode("b",1) )
        self.assertNotEqual( mp.QuestionNode("a",1,id="Q1"), mp.QuestionNode("a",1,id="Q2") )
        self.assertNotEqual( mp.Topic(1,"a",1), mp.Topic(2,"a",1) )

    def test_repr(self):
        self.assertEqual("ConditionNode('x',2,[])", repr(mp.ConditionNode("x",2)))

    def test_unhashable(self):
        for node in (mp.QuestionNode("a",1), mp.ConditionNode("x",2),
                mp.Topic(1,"a",1), mp.Document()):
            with self.assertRaises(TypeError):
                hash(node)


class TestParse(unittest.TestCase):

    def test_minimal(self):
        d = mp.parse("- **Q:** X\n")
        self.assertEqual(1, len(d.questions))
        self.assertEqual("Q1", d.questions[0].id)
        self.assertEqual("X", d.questions[0].text)
        self.assertEqual(1, d.questions[0].line_number)
        self.assertEqual([], d.topics)

    def test_exported_from_package(self):
        self.assertEqual(mp.parse("- **Q:** X\n"), mdtree.parse("- **Q:** X\n"))

    def test_simple_branching(self):
        d = mp.parse(SIMPLE)
        q1 = d.questions[0]
        self.assertEqual("Q1", q1.id)
        self.assertEqual(['"Yes"','"No"'], [ c.answer for c in q1.conditions ])
        self.assertEqual("Q2", q1.conditions[0].questions[0].id)
        self.assertEqual("Q3", q1.conditions[1].questions[0].id)
        self.assertEqual("How is that possible?", q1.conditions[1].questions[0].text)
        self.assertEqual(4, q1.conditions[1].line_number)

    def test_nested_identifiers(self):
        d = mp.parse(NESTED)
        a = d.questions[0]
        self.assertEqual("Q2", a.conditions[0].questions[0].id)
        self.assertEqual("Q3", a.conditions[0].questions[0].conditions[0].questions[0].id)
        self.assertEqual("Q4", a.conditions[1].questions[0].id)

    def test_witness_identifiers(self):
        d = mp.parse(WITNESS)
        self.assertEqual([], d.questions)
        self.assertEqual("Witness Testimony", d.topics[0].title)
        q1 = d.topics[0].questions[0]
        self.assertEqual("Q1", q1.id)
        q2 = q1.conditions[0].questions[0]
        self.assertEqual("Q2", q2.id)
        self.assertEqual("Q3", q2.conditions[0].questions[0].id)
        self.assertEqual("Q4", q2.conditions[1].questions[0].id)
        self.assertEqual("Q5", q1.conditions[1].questions[0].id)
        self.assertEqual("Q6", q1.conditions[2].questions[0].id)

    def test_identifiers_have_no_gaps(self):
        d = mp.parse(WITNESS+"# More\n- **Q:** a\n- **Q:** b\n")
        self.assertEqual(["Q%d" % i for i in range(1,9)],
            [ q.id for q in d.iter_questions() ])
        self.assertEqual(8, d.question_count)

    def test_identifiers_continue_across_roots(self):
        d = mp.parse('- **Q:** First root\n'
                     '  - **IF:** "Yes"\n'
                     '    - **Q:** Nested under first\n'
                     '- **Q:** Second root\n'
                     '  - **IF:** "No"\n'
                     '    - **Q:** Nested under second\n')
        self.assertEqual("Q3", d.questions[1].id)
        self.assertEqual("Q4", d.questions[1].conditions[0].questions[0].id)

    def test_orphans_numbered_before_topics(self):
        d = mp.parse("- **Q:** Root question?\n\n# Topic\n\n- **Q:** Topic question?\n")
        self.assertEqual("Q1", d.questions[0].id)
        self.assertEqual("Q2", d.topics[0].questions[0].id)

    def test_sibling_topics(self):
        d = mp.parse("# Topic A\n\n- **Q:** Question A?\n\n# Topic B\n\n- **Q:** Question B?\n")
        self.assertEqual(2, len(d.topics))
        self.assertEqual([1,1], [ t.level for t in d.topics ])
        self.assertEqual("Q1", d.topics[0].questions[0].id)
        self.assertEqual("Q2", d.topics[1].questions[0].id)
        self.assertEqual(5, d.topics[1].line_number)

    def test_topic_tree(self):
        d = mp.parse(TOPICS)
        self.assertEqual(["Main","Other"], [ t.title for t in d.topics ])
        main = d.topics[0]
        self.assertEqual([], main.questions)
        self.assertEqual(["Sub","Sub2"], [ t.title for t in main.topics ])
        self.assertEqual("Deep", main.topics[0].topics[0].title)
        self.assertEqual(["S","D","S2","O"], [ q.text for q in d.iter_questions() ])
        self.assertEqual("Q2", main.topics[0].topics[0].questions[0].id)

    def test_heading_levels(self):
        d = mp.parse("# H1\n## H2\n### H3\n#### H4\n##### H5\n###### H6\n\n- **Q:** Question?\n")
        t = d.topics[0]
        for level in range(1,7):
            self.assertEqual(level, t.level)
            if level < 6:
                t = t.topics[0]
        self.assertEqual("Question?", t.questions[0].text)

    def test_blank_lines(self):
        d = mp.parse("- **Q:** First\n\n\n  - **IF:** Yes\n\n\n    - **Q:** Second\n")
        second = d.questions[0].conditions[0].questions[0]
        self.assertEqual("Second", second.text)
        self.assertEqual(7, second.line_number)

    def test_multiple_questions_under_condition(self):
        d = mp.parse('- **Q:** Main question?\n'
                     '  - **IF:** "Yes"\n'
                     '    - **Q:** First follow-up?\n'
                     '    - **Q:** Second follow-up?\n'
                     '    - **Q:** Third follow-up?\n')
        self.assertEqual(["Q2","Q3","Q4"],
            [ q.id for q in d.questions[0].conditions[0].questions ])

    def test_deep_nesting(self):
        text = "- **Q:** L0\n"
        for i in range(1,10):
            marker = "IF" if i % 2 == 1 else "Q"
            text += "%s- **%s:** L%d\n" % ("  "*i,marker,i)
        d = mp.parse(text)
        self.assertEqual(1, len(d.questions))
        self.assertEqual(5, d.question_count)

    def test_crlf(self):
        d = mp.parse('- **Q:** First question?\r\n  - **IF:** "Yes"\r\n    - **Q:** Follow-up?\r\n')
        self.assertEqual("Follow-up?", d.questions[0].conditions[0].questions[0].text)

    def test_unicode_and_special_characters(self):
        d = mp.parse('- **Q:** ¿Qué pasó con los $100 & "quotes"?\n')
        self.assertEqual('¿Qué pasó con los $100 & "quotes"?', d.questions[0].text)

    def test_long_text(self):
        d = mp.parse("- **Q:** %s\n" % ("A"*500))
        self.assertEqual("A"*500, d.questions[0].text)

    def test_parse_is_repeatable(self):
        a = mp.parse(WITNESS)
        b = mp.parse(WITNESS)
        self.assertEqual(a, b)
        self.assertIsNot(a.topics[0], b.topics[0])

    def test_no_trailing_newline(self):
        with self.assertRaises(mp.MissingFinalNewline):
            mp.parse("- **Q:** X")

    def test_empty_variants(self):
        for text in ("","\n","   \n","# Topic\n","# A\n## B\n"):
            with self.assertRaises(mp.EmptyDocument):
                mp.parse(text)

    def test_condition_at_top_level(self):
        with self.assertRaises(mp.ConditionAtTopLevel) as cm:
            mp.parse("- **IF:** Top level\n")
        self.assertIn("line 1", str(cm.exception))

    def test_question_under_question(self):
        with self.assertRaises(mp.QuestionUnderQuestion) as cm:
            mp.parse("- **Q:** Parent\n  - **Q:** Child\n")
        self.assertEqual(2, cm.exception.line_number)
        self.assertEqual("Q-node cannot be direct child of another Q-node (line 2)",
            str(cm.exception))

    def test_condition_under_condition(self):
        with self.assertRaises(mp.ConditionUnderCondition) as cm:
            mp.parse("- **Q:** Parent\n  - **IF:** First IF\n    - **IF:** Nested IF\n")
        self.assertEqual(3, cm.exception.line_number)

    def test_odd_indent(self):
        for n in (1,3,5):
            with self.assertRaises(mp.InvalidIndent) as cm:
                mp.parse("- **Q:** A\n  - **IF:** b\n%s- **Q:** c\n" % (" "*n))
            self.assertIn("(got %d spaces)" % n, str(cm.exception))
            self.assertEqual(3, cm.exception.line_number)

    def test_line_errors_before_structure_errors(self):
        with self.assertRaises(mp.InvalidMarkerCase) as cm:
            mp.parse("- **IF:** top\n- **q:** x\n")
        self.assertEqual(2, cm.exception.line_number)

    def test_stops_at_classification_failure(self):
        with mock.patch.object(mp,"build_tree") as build_tree:
            with self.assertRaises(mp.TabCharacter):
                mp.parse("- **Q:**\tX\n")
            self.assertFalse(build_tree.called)

    def test_assigns_identifiers_to_built_tree(self):
        built = mp.Document([mp.QuestionNode("a",1)])
        with mock.patch.object(mp,"build_tree",return_value=built):
            result = mp.parse("- **Q:** ignored\n")
        self.assertIs(built, result)
        self.assertEqual("Q1", built.questions[0].id)


class TestMermaidIO(unittest.TestCase):

    def test_has_extensions(self):
        mio.MermaidIO.EXTENSIONS[0]

    def test_minimal(self):
        self.assertEqual('graph TD\n    Q1["Q: What is your name?"]',
            mdtree.to_mermaid("- **Q:** What is your name?\n"))

    def test_simple_branching(self):
        self.assertEqual('graph TD\n'
                         '    Q1["Q: Did you send the email?"]\n'
                         '    Q2["Q: Why did you copy the competitor?"]\n'
                         '    Q3["Q: How is that possible?"]\n'
                         '    Q1 -->|"Yes"| Q2\n'
                         '    Q1 -->|"No"| Q3', mio.to_mermaid(SIMPLE))

    def test_edges_follow_branch_order(self):
        lines = mio.to_mermaid(NESTED).split("\n")
        self.assertEqual(['    Q1 -->|x| Q2','    Q2 -->|y| Q3','    Q1 -->|z| Q4'],
            lines[5:])

    def test_flat_questions_have_no_edges(self):
        out = mio.to_mermaid("- **Q:** a\n- **Q:** b\n- **Q:** c\n")
        self.assertEqual(4, len(out.split("\n")))
        self.assertNotIn("-->", out)

    def test_topics(self):
        out = mio.to_mermaid(TOPICS)
        self.assertEqual('graph TD\n'
                         '    Q1["Q: S"]\n'
                         '    Q2["Q: D"]\n'
                         '    Q3["Q: S2"]\n'
                         '    Q4["Q: O"]', out)

    def test_escapes_quotes(self):
        self.assertIn('Q1["Q: Is &quot;this&quot; a test?"]',
            mio.to_mermaid('- **Q:** Is "this" a test?\n'))

    def test_escapes_brackets(self):
        self.assertIn("#91;brackets#93;", mio.to_mermaid("- **Q:** [brackets]\n"))

    def test_escapes_angle_brackets(self):
        self.assertEqual("x &lt; y &gt; z", mio.MermaidIO.escape("x < y > z"))

    def test_does_not_escape_answers(self):
        out = mio.to_mermaid('- **Q:** a\n  - **IF:** "b" <[c]>\n    - **Q:** d\n')
        self.assertIn('    Q1 -->|"b" <[c]>| Q2', out)

    def test_write(self):
        s = io.StringIO()
        d = mp.Document([mp.QuestionNode("x",1,id="Q7")])
        mio.MermaidIO.write(d,s)
        self.assertEqual('graph TD\n    Q7["Q: x"]', s.getvalue())

    def test_parse_error_propagates(self):
        with self.assertRaises(mp.ParseError):
            mio.to_mermaid("invalid")

    def test_uses_parser(self):
        d = mp.Document([mp.QuestionNode("x",1,id="Q1")])
        with mock.patch.object(mp,"parse",return_value=d) as parse:
            mio.to_mermaid("text")
        parse.assert_called_once_with("text")


class TestInkIO(unittest.TestCase):

    def test_has_extensions(self):
        mio.InkIO.EXTENSIONS[0]

    def test_minimal(self):
        self.assertEqual("Q: What is your name?",
            mdtree.to_ink("- **Q:** What is your name?\n"))

    def test_no_blank_after_leaf_questions(self):
        self.assertEqual("Q: First?\nQ: Second?",
            mio.to_ink("- **Q:** First?\n- **Q:** Second?\n"))

    def test_simple_branching(self):
        self.assertEqual('Q: Did you send the email?\n'
                         '\n'
                         '+ "Yes"\n'
                         '    Q: Why did you copy the competitor?\n'
                         '+ "No"\n'
                         '    Q: How is that possible?', mio.to_ink(SIMPLE))

    def test_nested(self):
        self.assertEqual('Q: A\n'
                         '\n'
                         '+ x\n'
                         '    Q: B\n'
                         '\n'
                         '    + y\n'
                         '        Q: C\n'
                         '+ z\n'
                         '    Q: D', mio.to_ink(NESTED))

    def test_does_not_escape(self):
        self.assertEqual('Q: Is "this" [it]?', mio.to_ink('- **Q:** Is "this" [it]?\n'))

    def test_topics(self):
        self.assertEqual("Q: S\nQ: D\nQ: S2\nQ: O", mio.to_ink(TOPICS))

    def test_write(self):
        s = io.StringIO()
        mio.InkIO.write(mp.Document([mp.QuestionNode("x",1)]),s)
        self.assertEqual("Q: x", s.getvalue())

    def test_parse_error_propagates(self):
        with self.assertRaises(mp.ParseError):
            mio.to_ink("invalid")


class TestJsonIO(unittest.TestCase):

    def test_has_extensions(self):
        mio.JsonIO.EXTENSIONS[0]

    def test_write_handles_document(self):
        s = io.StringIO()
        mio.JsonIO.write(mp.Document(),s)
        self.assertEqual('{\n'
                         '    "questions": [],\n'
                         '    "topics": []\n'
                         '}', s.getvalue())

    def test_write_handles_question(self):
        s = io.StringIO()
        mio.JsonIO.write(mp.parse("- **Q:** X\n"),s)
        self.assertEqual('{\n'
                         '    "questions": [\n'
                         '        {\n'
                         '            "conditions": [],\n'
                         '            "id": "Q1",\n'
                         '            "line": 1,\n'
                         '            "text": "X"\n'
                         '        }\n'
                         '    ],\n'
                         '    "topics": []\n'
                         '}', s.getvalue())

    def test_write_handles_topic_and_condition(self):
        s = io.StringIO()
        mio.JsonIO.write(mp.Document([],[ mp.Topic(2,"T",1,[
            mp.QuestionNode("a",2,[ mp.ConditionNode("b",3) ],"Q1") ]) ]),s)
        self.assertEqual('{\n'
                         '    "questions": [],\n'
                         '    "topics": [\n'
                         '        {\n'
                         '            "level": 2,\n'
                         '            "line": 1,\n'
                         '            "questions": [\n'
                         '                {\n'
                         '                    "conditions": [\n'
                         '                        {\n'
                         '                            "answer": "b",\n'
                         '                            "line": 3,\n'
                         '                            "questions": []\n'
                         '                        }\n'
                         '                    ],\n'
                         '                    "id": "Q1",\n'
                         '                    "line": 2,\n'
                         '                    "text": "a"\n'
                         '                }\n'
                         '            ],\n'
                         '            "title": "T",\n'
                         '            "topics": []\n'
                         '        }\n'
                         '    ]\n'
                         '}', s.getvalue())


class TestMarkdownIO(unittest.TestCase):

    def test_has_extensions(self):
        mio.MarkdownIO.EXTENSIONS[0]

    def test_read(self):
        d = mio.MarkdownIO.read(io.StringIO(SIMPLE))
        self.assertEqual(3, d.question_count)

    def test_read_raises_parse_error(self):
        with self.assertRaises(mp.QuestionUnderQuestion):
            mio.MarkdownIO.read(io.StringIO("- **Q:** Parent\n  - **Q:** Child\n"))

    def test_write_canonical(self):
        s = io.StringIO()
        mio.MarkdownIO.write(mp.parse("- **Q:** Root\n"
                                      "# Main\n"
                                      "## Sub\n"
                                      "- **Q:**A\n"
                                      "  - **IF:**   yes\n"
                                      "    - **Q:** B\n"),s)
        self.assertEqual("- **Q:** Root\n"
                         "\n"
                         "# Main\n"
                         "\n"
                         "## Sub\n"
                         "\n"
                         "- **Q:** A\n"
                         "  - **IF:** yes\n"
                         "    - **Q:** B\n", s.getvalue())

    def test_canonical_form_is_stable(self):
        for text in (SIMPLE,NESTED,WITNESS,TOPICS):
            once = mio.MarkdownIO.render(mp.parse(text))
            self.assertEqual(once, mio.MarkdownIO.render(mp.parse(once)))

    def test_canonical_form_keeps_identifiers(self):
        d = mp.parse(WITNESS)
        again = mp.parse(mio.MarkdownIO.render(d))
        self.assertEqual([ (q.id,q.text) for q in d.iter_questions() ],
            [ (q.id,q.text) for q in again.iter_questions() ])


class TestCommandLineRunner(unittest.TestCase):

    def do_run(self,doc,input):
        i = io.StringIO(input)
        o = io.StringIO()
        mrun.CommandLineRunner()._run(doc,i,o)
        return o.getvalue()

    def test_can_run(self):
        self.do_run( mp.Document(), "" )

    def test_prints_leaf_question(self):
        result = self.do_run( mp.parse("- **Q:** X\n"), "" )
        self.assertEqual("Q: X\n\n[enter]\n\n", result)

    def test_prints_topic_title(self):
        result = self.do_run( mp.parse("# Topic\n- **Q:** X\n"), "" )
        self.assertEqual("Topic\n-----\n\nQ: X\n\n[enter]\n\n", result)

    def test_follows_chosen_answer(self):
        result = self.do_run( mp.parse(SIMPLE), "2\n\n" )
        self.assertEqual('Q: Did you send the email?\n\n'
                         '1) "Yes"\n2) "No"\n\n'
                         '> \n\n'
                         'Q: How is that possible?\n\n'
                         '[enter]\n\n', result)

    def test_validates_choice_too_high(self):
        result = self.do_run( mp.parse(SIMPLE), "3\n1\n\n" )
        self.assertIn("> \n\nInvalid choice\n\n> \n\nQ: Why did you copy", result)

    def test_validates_choice_too_low(self):
        result = self.do_run( mp.parse(SIMPLE), "0\n1\n\n" )
        self.assertIn("Invalid choice\n\n", result)

    def test_validates_non_numeric(self):
        result = self.do_run( mp.parse(SIMPLE), "foo\n1\n\n" )
        self.assertIn("> \n\nEnter a number\n\n> \n\n", result)

    def test_error_if_input_ends(self):
        with self.assertRaises(mrun.RunnerError):
            self.do_run( mp.parse(SIMPLE), "" )

    def test_invokes_readline_after_prompt(self):
        log = []
        def readline():
            log.append("readline")
            return "1\n"
        def write(val):
            log.append("write %s" % val)
        i = mock.Mock()
        i.readline.side_effect = readline
        o = mock.Mock()
        o.write.side_effect = write
        d = mp.Document([ mp.QuestionNode("foo",1,[ mp.ConditionNode("bar",2) ],"Q1") ])
        mrun.CommandLineRunner()._run(d,i,o)
        self.assertEqual(["write Q: foo\n\n","write 1) bar\n","write \n","write > ",
            "readline","write \n\n"], log)


class TestMain(unittest.TestCase):

    def setUp(self):
        global mmain
        import mdtree.__main__ as mmain

    def test_format_by_name(self):
        self.assertIs(mio.InkIO, mmain.output_format("ink",None))
        self.assertIs(mio.MarkdownIO, mmain.output_format("markdown","x.json"))

    def test_format_by_extension(self):
        self.assertIs(mio.JsonIO, mmain.output_format(None,"out.json"))
        self.assertIs(mio.InkIO, mmain.output_format(None,"story.ink"))
        self.assertIs(mio.MarkdownIO, mmain.output_format(None,"tree.md"))
        self.assertIs(mio.MermaidIO, mmain.output_format(None,"graph.mmd"))

    def test_format_defaults_to_mermaid(self):
        self.assertIs(mio.MermaidIO, mmain.output_format(None,None))
        self.assertIs(mio.MermaidIO, mmain.output_format(None,"-"))
        self.assertIs(mio.MermaidIO, mmain.output_format(None,"out.txt"))

    def test_formats_cover_writers(self):
        self.assertEqual(["mermaid","ink","json","markdown"], list(mmain.FORMATS.keys()))

    def test_option_names_any_case(self):
        check = mmain._one_of("mermaid","ink")
        self.assertEqual("mermaid", check("mermaid"))
        self.assertEqual("ink", check("INK"))
        with self.assertRaises(ValueError):
            check("svg")

    def test_help_drops_default_note(self):
        formatter = mmain.OptionHelpFormatter("mdtree")
        action = mock.Mock(help="Output format (default: %(default)s)")
        self.assertEqual("Output format", formatter._get_help_string(action))
        action = mock.Mock(help="A filename, or '-' (standard output)")
        self.assertEqual("A filename, or '-' (standard output)",
            formatter._get_help_string(action))

    def _start(self,*args):
        handle,path = tempfile.mkstemp(suffix=".md")
        with os.fdopen(handle,"w",encoding="utf-8") as f:
            f.write(SIMPLE)
        self.addCleanup(os.remove,path)
        root = logging.getLogger()
        handlers,level = root.handlers[:],root.level
        def restore():
            root.handlers[:] = handlers
            root.setLevel(level)
        self.addCleanup(restore)
        stdout = io.StringIO()
        with mock.patch.object(sys,"argv",["mdtree",path]+list(args)), \
                mock.patch.object(sys,"stdout",stdout):
            try:
                mmain.main.start()
            except SystemExit as e:
                self.assertFalse(e.code)
        return stdout

    def test_stdout_holds_only_output(self):
        stdout = self._start("--tofmt","mermaid","--output","-")
        self.assertFalse(stdout.closed)
        self.assertEqual(mio.to_mermaid(SIMPLE), stdout.getvalue())

    def test_stdout_holds_only_ink_output(self):
        stdout = self._start("--output","-","--tofmt","ink")
        self.assertEqual(mio.to_ink(SIMPLE), stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
