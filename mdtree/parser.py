import re
import logging


log = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised for any rule violation in the input. Holds the bare
    message and the 1-indexed line it relates to (0 for problems with
    the document as a whole). The string form appends the line."""

    kind = "parse-error"

    _message = None
    message = property(lambda s: s._message)
    _line_number = 0
    line_number = property(lambda s: s._line_number)

    def __init__(self,message,line_number=0):
        Exception.__init__(self,"%s (line %d)" % (message,line_number))
        self._message = message
        self._line_number = line_number

    def __reduce__(self):
        # subclass constructors don't take the formatted args back
        return (_rebuild_error,(type(self),self.args,self.__dict__))


def _rebuild_error(cls,args,state):
    error = cls.__new__(cls)
    error.args = args
    error.__dict__.update(state)
    return error


class EmptyDocument(ParseError):

    kind = "empty-document"

    def __init__(self,line_number=0):
        ParseError.__init__(self,"Document must contain at least one Q-node",
            line_number)


class MissingFinalNewline(ParseError):

    kind = "missing-final-newline"

    def __init__(self,line_number=0):
        ParseError.__init__(self,"Document must end with newline character",
            line_number)


class TabCharacter(ParseError):

    kind = "tab-character"

    def __init__(self,line_number):
        ParseError.__init__(self,"Tabs are not allowed; use spaces only",
            line_number)


class InvalidIndent(ParseError):

    kind = "invalid-indent"

    def __init__(self,spaces,line_number):
        ParseError.__init__(self,"Indent must be multiple of 2 spaces "
            "(got %d spaces)" % spaces, line_number)
        self.spaces = spaces


class EmptyMarkerText(ParseError):

    kind = "empty-marker-text"

    def __init__(self,marker,line_number):
        ParseError.__init__(self,"**%s:** marker requires non-empty text" % marker,
            line_number)
        self.marker = marker


class UnbalancedBoldMarkers(ParseError):

    kind = "unbalanced-bold-markers"

    def __init__(self,line_number):
        ParseError.__init__(self,"Unbalanced bold markers in text",line_number)


class InvalidMarkerCase(ParseError):

    kind = "invalid-marker-case"

    def __init__(self,line_number):
        ParseError.__init__(self,"Markers must be exactly **Q:** or **IF:** "
            "(case-sensitive)", line_number)


class UnknownMarker(ParseError):

    kind = "unknown-marker"

    def __init__(self,word,line_number):
        ParseError.__init__(self,"Unknown bold marker (got: **%s:**)" % word,
            line_number)
        self.word = word


class MissingMarker(ParseError):

    kind = "missing-marker"

    def __init__(self,line_number):
        ParseError.__init__(self,"List item must start with **Q:** or **IF:**",
            line_number)


class InvalidLineFormat(ParseError):

    kind = "invalid-line-format"

    def __init__(self,line_number,message="Invalid line format"):
        ParseError.__init__(self,message,line_number)


class InvalidHeadingFormat(InvalidLineFormat):
    """A line starting with '#' which isn't a valid heading"""

    kind = "invalid-heading-format"

    def __init__(self,line_number):
        InvalidLineFormat.__init__(self,line_number,"Invalid heading format")


class ConditionAtTopLevel(ParseError):

    kind = "condition-at-top-level"

    def __init__(self,line_number):
        ParseError.__init__(self,"**IF:** node cannot appear at indent level 0",
            line_number)


class OrphanedQuestion(ParseError):

    kind = "orphaned-question"

    def __init__(self,line_number):
        ParseError.__init__(self,"Q-node at non-zero indent must have a parent",
            line_number)


class OrphanedCondition(ParseError):

    kind = "orphaned-condition"

    def __init__(self,line_number):
        ParseError.__init__(self,"IF-node must have a parent Q-node",line_number)


class QuestionUnderQuestion(ParseError):

    kind = "question-under-question"

    def __init__(self,line_number):
        ParseError.__init__(self,"Q-node cannot be direct child of another Q-node",
            line_number)


class ConditionUnderCondition(ParseError):

    kind = "condition-under-condition"

    def __init__(self,line_number):
        ParseError.__init__(self,"IF-node cannot be direct child of another IF-node",
            line_number)


class _Node(object):
    """Value equality and repr over the attributes named in _FIELDS.
    Nodes are mutable while the tree is built, so they are unhashable."""

    _FIELDS = ()
    __hash__ = None

    def _values(self):
        return tuple(getattr(self,f) for f in self._FIELDS)

    def __eq__(self,other):
        if type(other) is not type(self):
            return NotImplemented
        return self._values() == other._values()

    def __repr__(self):
        return "%s(%s)" % (type(self).__name__,
            ",".join(map(repr,self._values())))


class ConditionNode(_Node):
    """An answer branch under a question"""

    kind = "condition"
    _FIELDS = ("answer","line_number","questions")

    _answer = None
    answer = property(lambda s: s._answer)
    _line_number = 0
    line_number = property(lambda s: s._line_number)
    _questions = None
    questions = property(lambda s: list(s._questions))

    def __init__(self,answer,line_number,questions=None):
        self._answer = answer
        self._line_number = line_number
        self._questions = list(questions) if questions is not None else []

    def iter_questions(self):
        for q in self._questions:
            for d in q.iter_questions():
                yield d


class QuestionNode(_Node):
    """A question. Identifier is None until the tree is complete"""

    kind = "question"
    _FIELDS = ("id","text","line_number","conditions")

    _id = None
    id = property(lambda s: s._id)
    _text = None
    text = property(lambda s: s._text)
    _line_number = 0
    line_number = property(lambda s: s._line_number)
    _conditions = None
    conditions = property(lambda s: list(s._conditions))

    def __init__(self,text,line_number,conditions=None,id=None):
        self._text = text
        self._line_number = line_number
        self._conditions = list(conditions) if conditions is not None else []
        self._id = id

    def iter_questions(self):
        """Yields this question then its descendant questions,
        depth first"""
        yield self
        for c in self._conditions:
            for q in c.iter_questions():
                yield q


class Topic(_Node):
    """A heading, owning the questions which follow it and the
    headings of greater level nested beneath it"""

    kind = "topic"
    _FIELDS = ("level","title","line_number","questions","topics")

    _level = 0
    level = property(lambda s: s._level)
    _title = None
    title = property(lambda s: s._title)
    _line_number = 0
    line_number = property(lambda s: s._line_number)
    _questions = None
    questions = property(lambda s: list(s._questions))
    _topics = None
    topics = property(lambda s: list(s._topics))

    def __init__(self,level,title,line_number,questions=None,topics=None):
        self._level = level
        self._title = title
        self._line_number = line_number
        self._questions = list(questions) if questions is not None else []
        self._topics = list(topics) if topics is not None else []

    def iter_questions(self):
        for q in self._questions:
            for d in q.iter_questions():
                yield d
        for t in self._topics:
            for d in t.iter_questions():
                yield d


class Document(_Node):
    """The parse result. Questions appearing before the first heading
    are held in 'questions', everything else under 'topics'."""

    kind = "document"
    _FIELDS = ("questions","topics")

    _questions = None
    questions = property(lambda s: list(s._questions))
    _topics = None
    topics = property(lambda s: list(s._topics))
    question_count = property(lambda s: sum(1 for q in s.iter_questions()))

    def __init__(self,questions=None,topics=None):
        self._questions = list(questions) if questions is not None else []
        self._topics = list(topics) if topics is not None else []

    def iter_questions(self):
        """Yields every question in identifier order"""
        for q in self._questions:
            for d in q.iter_questions():
                yield d
        for t in self._topics:
            for d in t.iter_questions():
                yield d


class BlankLine(object):

    kind = "blank"

    _number = 0
    number = property(lambda s: s._number)

    def __init__(self,number):
        self._number = number

    def __repr__(self):
        return "BlankLine(%d)" % self._number

    @staticmethod
    def parse(text,number):
        if text.strip() != "": return None
        return BlankLine(number)


class HeadingLine(object):

    kind = "heading"
    _PATTERN = re.compile(r"(#{1,6}) (.+)")

    _number = 0
    number = property(lambda s: s._number)
    _level = 0
    level = property(lambda s: s._level)
    _text = None
    text = property(lambda s: s._text)

    def __init__(self,number,level,text):
        self._number = number
        self._level = level
        self._text = text

    def __repr__(self):
        return "HeadingLine(%d,%d,%s)" % (self._number,self._level,
            repr(self._text))

    @staticmethod
    def parse(text,number):
        m = HeadingLine._PATTERN.fullmatch(text)
        if m is None: return None
        return HeadingLine(number,len(m.group(1)),m.group(2))


class MarkerLine(object):
    """A list item carrying a **Q:** or **IF:** marker. 'level' is
    the indent level, i.e. leading spaces / 2."""

    kind = None
    MARKER = None

    _number = 0
    number = property(lambda s: s._number)
    _level = 0
    level = property(lambda s: s._level)
    _text = None
    text = property(lambda s: s._text)

    def __init__(self,number,level,text):
        self._number = number
        self._level = level
        self._text = text

    def __repr__(self):
        return "%s(%d,%d,%s)" % (type(self).__name__,self._number,
            self._level,repr(self._text))

    @classmethod
    def parse_content(cls,content,level,number):
        """Parses the list item content following '- '. Returns None
        if it doesn't start with this type's marker"""
        m = re.fullmatch(r"\*\*%s:\*\* ?(.*)" % cls.MARKER,content)
        if m is None: return None
        text = m.group(1).strip()
        if text == "":
            raise EmptyMarkerText(cls.MARKER,number)
        if "**" in text:
            raise UnbalancedBoldMarkers(number)
        return cls(number,level,text)


class QuestionLine(MarkerLine):

    kind = "question"
    MARKER = "Q"


class ConditionLine(MarkerLine):

    kind = "condition"
    MARKER = "IF"


class ListItemLine(object):

    _PATTERN = re.compile(r"( *)- (.*)")
    _ANY_CASE_MARKER = re.compile(r"\*\*(q|if):\*\*",re.IGNORECASE)
    _BOLD_MARKER = re.compile(r"\*\*([^*]+):\*\*")

    @staticmethod
    def parse(text,number):
        m = ListItemLine._PATTERN.fullmatch(text)
        if m is None: return None

        spaces = len(m.group(1))
        if spaces % 2 != 0:
            raise InvalidIndent(spaces,number)

        content = m.group(2)
        for linetype in (QuestionLine,ConditionLine):
            item = linetype.parse_content(content,spaces//2,number)
            if item is not None: return item

        if ListItemLine._ANY_CASE_MARKER.match(content):
            raise InvalidMarkerCase(number)
        m = ListItemLine._BOLD_MARKER.match(content)
        if m is not None:
            raise UnknownMarker(m.group(1),number)
        raise MissingMarker(number)


def classify_line(text,number):
    for linetype in (BlankLine,HeadingLine,ListItemLine):
        line = linetype.parse(text,number)
        if line is not None: return line
    if text.startswith("#"):
        raise InvalidHeadingFormat(number)
    raise InvalidLineFormat(number)


def classify_lines(data):
    """Splits the raw document into typed line records, checking the
    document-level rules first"""
    if len(data) == 0:
        raise EmptyDocument()
    if not data.endswith("\n"):
        raise MissingFinalNewline()

    texts = data.replace("\r\n","\n").split("\n")
    for i,text in enumerate(texts):
        if "\t" in text:
            raise TabCharacter(i+1)

    # final newline leaves an empty segment which isn't a line
    texts = texts[:-1]

    lines = [ classify_line(t,i+1) for i,t in enumerate(texts) ]
    log.debug("Classified %d lines",len(lines))
    return lines


class TreeBuilder(object):
    """Assembles the document from classified lines. Keeps a stack
    of open headings and a stack of open (node, indent level) pairs."""

    _document = None
    document = property(lambda s: s._document)

    def __init__(self):
        self._document = Document()
        self._topic_stack = []
        self._node_stack = []

    def feed(self,line):
        getattr(self,"_feed_%s" % line.kind)(line)

    def _feed_blank(self,line):
        pass

    def _feed_heading(self,line):
        topic = Topic(line.level,line.text,line.number)
        self._node_stack = []
        while len(self._topic_stack) > 0 and self._topic_stack[-1].level >= topic.level:
            self._topic_stack.pop()
        if len(self._topic_stack) > 0:
            self._topic_stack[-1]._topics.append(topic)
        else:
            self._document._topics.append(topic)
        self._topic_stack.append(topic)

    def _feed_question(self,line):
        question = QuestionNode(line.text,line.number)
        if line.level == 0:
            if len(self._topic_stack) > 0:
                self._topic_stack[-1]._questions.append(question)
            else:
                self._document._questions.append(question)
            self._node_stack = [(question,0)]
            return

        parent = self._open_parent(line.level)
        if parent is None:
            raise OrphanedQuestion(line.number)
        if parent.kind == QuestionNode.kind:
            raise QuestionUnderQuestion(line.number)
        parent._questions.append(question)
        self._node_stack.append((question,line.level))

    def _feed_condition(self,line):
        if line.level == 0:
            raise ConditionAtTopLevel(line.number)

        condition = ConditionNode(line.text,line.number)
        parent = self._open_parent(line.level)
        if parent is None:
            raise OrphanedCondition(line.number)
        if parent.kind == ConditionNode.kind:
            raise ConditionUnderCondition(line.number)
        parent._conditions.append(condition)
        self._node_stack.append((condition,line.level))

    def _open_parent(self,level):
        """Closes nodes at or deeper than the given level and returns
        the innermost one left open, if any"""
        while len(self._node_stack) > 0 and self._node_stack[-1][1] >= level:
            self._node_stack.pop()
        if len(self._node_stack) == 0:
            return None
        return self._node_stack[-1][0]


def build_tree(lines):
    builder = TreeBuilder()
    for line in lines:
        builder.feed(line)
    document = builder.document

    # headings alone don't make a document
    if document.question_count == 0:
        raise EmptyDocument()

    return document


def assign_identifiers(document):
    """Numbers every question Q1, Q2... in depth-first pre-order:
    orphan questions, then each topic's own questions before those
    of its sub-topics"""
    count = 0
    for count,question in enumerate(document.iter_questions(),1):
        question._id = "Q%d" % count
    log.debug("Assigned %d question identifiers",count)
    return document


def parse(data):
    """Parses Decision Tree Markdown text into a Document. Raises a
    ParseError subclass for the first rule violation found."""
    lines = classify_lines(data)
    document = build_tree(lines)
    return assign_identifiers(document)
