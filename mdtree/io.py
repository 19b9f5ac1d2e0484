import json
import logging
from . import parser


log = logging.getLogger(__name__)


class MermaidIO(object):
    """Writes the question graph as a Mermaid flowchart. Each question
    is a node; each answer under a question labels the edges to the
    follow-up questions beneath it."""

    EXTENSIONS = ["mmd","mermaid"]
    HEADER = "graph TD"
    INDENT = " "*4

    # node labels only; edge labels are written as-is
    _ESCAPES = [
        ('"',"&quot;"),
        ("<","&lt;"),
        (">","&gt;"),
        ("[","#91;"),
        ("]","#93;"),
    ]

    @staticmethod
    def render(document):
        return MermaidIO.INST._render(document)

    @staticmethod
    def write(document,stream):
        stream.write(MermaidIO.render(document))

    @staticmethod
    def escape(text):
        for char,entity in MermaidIO._ESCAPES:
            text = text.replace(char,entity)
        return text

    def _render(self,document):
        lines = [MermaidIO.HEADER]
        for q in document.iter_questions():
            lines.append('%s%s["Q: %s"]' % (MermaidIO.INDENT,q.id,
                MermaidIO.escape(q.text)))
        edges = []
        for q in document.questions:
            self._visit_edges(q,edges)
        for t in document.topics:
            self._visit_topic(t,edges)
        lines.extend(edges)
        return "\n".join(lines)

    def _visit_topic(self,topic,edges):
        for q in topic.questions:
            self._visit_edges(q,edges)
        for t in topic.topics:
            self._visit_topic(t,edges)

    def _visit_edges(self,question,edges):
        for c in question.conditions:
            for child in c.questions:
                edges.append("%s%s -->|%s| %s" % (MermaidIO.INDENT,
                    question.id,c.answer,child.id))
                self._visit_edges(child,edges)


MermaidIO.INST = MermaidIO()


class InkIO(object):
    """Writes the questions as an Ink choice script: each question as
    narration and each answer as a choice, follow-ups nested beneath"""

    EXTENSIONS = ["ink"]
    INDENT = " "*4

    @staticmethod
    def render(document):
        return InkIO.INST._render(document)

    @staticmethod
    def write(document,stream):
        stream.write(InkIO.render(document))

    def _render(self,document):
        lines = []
        for q in document.questions:
            self._visit_question(q,0,lines)
        for t in document.topics:
            self._visit_topic(t,lines)
        return "\n".join(lines)

    def _visit_topic(self,topic,lines):
        for q in topic.questions:
            self._visit_question(q,0,lines)
        for t in topic.topics:
            self._visit_topic(t,lines)

    def _visit_question(self,question,depth,lines):
        prefix = InkIO.INDENT*depth
        lines.append("%sQ: %s" % (prefix,question.text))
        conditions = question.conditions
        if len(conditions) == 0:
            return
        lines.append("")
        for c in conditions:
            lines.append("%s+ %s" % (prefix,c.answer))
            for child in c.questions:
                self._visit_question(child,depth+1,lines)


InkIO.INST = InkIO()


class JsonIO(object):

    EXTENSIONS = ["json","js"]

    @staticmethod
    def render(document):
        return JsonIO.INST._render(document)

    @staticmethod
    def write(document,stream):
        stream.write(JsonIO.render(document))

    def _render(self,document):
        return json.dumps(self._visit(document),indent=4,sort_keys=True)

    def _visit(self,item):
        return getattr(self,"_visit_%s" % type(item).__name__)(item)

    def _visit_Document(self,doc):
        return { "questions": [ self._visit(q) for q in doc.questions ],
                "topics": [ self._visit(t) for t in doc.topics ] }

    def _visit_Topic(self,topic):
        return { "level": topic.level, "title": topic.title,
                "line": topic.line_number,
                "questions": [ self._visit(q) for q in topic.questions ],
                "topics": [ self._visit(t) for t in topic.topics ] }

    def _visit_QuestionNode(self,question):
        return { "id": question.id, "text": question.text,
                "line": question.line_number,
                "conditions": [ self._visit(c) for c in question.conditions ] }

    def _visit_ConditionNode(self,condition):
        return { "answer": condition.answer, "line": condition.line_number,
                "questions": [ self._visit(q) for q in condition.questions ] }


JsonIO.INST = JsonIO()


class MarkdownIO(object):
    """Reads Decision Tree Markdown, and writes a document back out
    in canonical form"""

    EXTENSIONS = ["md","markdown"]
    INDENT = " "*2

    @staticmethod
    def read(stream):
        return MarkdownIO.INST._read(stream)

    @staticmethod
    def render(document):
        return MarkdownIO.INST._render(document)

    @staticmethod
    def write(document,stream):
        stream.write(MarkdownIO.render(document))

    def _read(self,stream):
        document = parser.parse(stream.read())
        log.debug("Read document with %d questions",document.question_count)
        return document

    def _render(self,document):
        lines = []
        for q in document.questions:
            self._visit_question(q,0,lines)
        for t in document.topics:
            self._visit_topic(t,lines)
        return "\n".join(lines)+"\n"

    def _visit_topic(self,topic,lines):
        if len(lines) > 0:
            lines.append("")
        lines.append("%s %s" % ("#"*topic.level,topic.title))
        if len(topic.questions) > 0:
            lines.append("")
        for q in topic.questions:
            self._visit_question(q,0,lines)
        for t in topic.topics:
            self._visit_topic(t,lines)

    def _visit_question(self,question,level,lines):
        lines.append("%s- **Q:** %s" % (MarkdownIO.INDENT*level,question.text))
        for c in question.conditions:
            lines.append("%s- **IF:** %s" % (MarkdownIO.INDENT*(level+1),c.answer))
            for child in c.questions:
                self._visit_question(child,level+2,lines)


MarkdownIO.INST = MarkdownIO()


def to_mermaid(data):
    """Parses Decision Tree Markdown text and renders it as a Mermaid
    flowchart"""
    return MermaidIO.render(parser.parse(data))


def to_ink(data):
    """Parses Decision Tree Markdown text and renders it as an Ink
    choice script"""
    return InkIO.render(parser.parse(data))
