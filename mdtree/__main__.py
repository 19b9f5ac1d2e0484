#!/usr/bin/env python3

import begin
import argparse
import collections
import logging
import sys
import re
from . import VERSION
from . import io as mio
from . import parser as mparser
from . import run as mrun


log = logging.getLogger(__name__)

FORMATS = collections.OrderedDict([
    ("mermaid", mio.MermaidIO),
    ("ink", mio.InkIO),
    ("json", mio.JsonIO),
    ("markdown", mio.MarkdownIO),
])


class OptionHelpFormatter(argparse.HelpFormatter):
    """Option defaults are all None, so their help drops the
    '(default: ...)' note"""

    _DEFAULT_NOTE = re.compile(r"\s*\(default: %\(default\)s\)")

    def _get_help_string(self, action):
        return self._DEFAULT_NOTE.sub("", action.help)


def _one_of(*names):
    """Converter for an option taking one of the given names, in any
    case"""
    def check(value):
        name = value.lower()
        if name not in names:
            raise ValueError("expected one of %s, got '%s'" % (
                ", ".join(names), value))
        return name
    return check


def _extension(filename):
    if filename is not None and "." in filename:
        return filename[filename.rindex(".")+1:]
    return None


def output_format(tofmt, output):
    """Picks the writer named by tofmt, else the one matching the
    output file extension, else Mermaid"""
    if tofmt is not None:
        return FORMATS[tofmt]
    ext = _extension(output)
    for outformat in FORMATS.values():
        if ext in outformat.EXTENSIONS:
            return outformat
    return mio.MermaidIO


@begin.start(
    formatter_class=OptionHelpFormatter
)
@begin.logging
@begin.convert(
    tofmt=_one_of(*FORMATS.keys()),
    run=_one_of("cli"),
)
def main(
        input: "File to read from or '-' (standard input)",
        output: "Output the result. A filename, or '-' (standard output)" =None,
        tofmt: "Output format. One of 'mermaid', 'ink', 'json' or 'markdown'" =None,
        run: "Walk the decision tree interactively. Only 'cli' is supported" =None,
    ):
    """Processes Decision Tree Markdown documents"""

    log.debug("mdtree %s", ".".join(map(str, VERSION)))

    # read from input stream
    if input not in (None, "-"):
        instream = open(input, "r", encoding='utf-8')
    else:
        instream = sys.stdin

    try:
        document = mio.MarkdownIO.read(instream)
    except mparser.ParseError as e:
        sys.exit(str(e))
    finally:
        if instream is not sys.stdin:
            instream.close()

    log.debug("Parsed %d questions from %s", document.question_count,
        input if input not in (None, "-") else "standard input")

    if run is not None:
        try:
            mrun.CommandLineRunner.run(document)
        except mrun.RunnerError as e:
            sys.exit(str(e))
        if output is None and tofmt is None:
            return

    outformat = output_format(tofmt, output)
    log.debug("Writing %s output", outformat.__name__)

    if output not in (None, "-"):
        outstream = open(output, "w", encoding='utf-8')
    elif output == "-" or input in (None, "-"):
        outstream = sys.stdout
    else:
        outstream = open("%s.out.%s" % ( input[:input.rindex(".")]
            if "." in input else input, outformat.EXTENSIONS[0] ), "w", encoding='utf-8')

    if outstream is sys.stdout:
        outformat.write(document, outstream)
        outstream.flush()
    else:
        with outstream:
            outformat.write(document, outstream)
