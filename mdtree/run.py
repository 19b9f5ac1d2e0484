import sys
import logging


log = logging.getLogger(__name__)


class RunnerError(Exception):
    pass


class CommandLineRunner(object):
    """Walks the tree interactively on a text stream: asks each
    question, lets the user pick an answer and follows that branch"""

    @staticmethod
    def run(document):
        CommandLineRunner.INST._run(document,sys.stdin,sys.stdout)

    def _run(self,document,ins,outs):
        for q in document.questions:
            self._run_question(q,ins,outs)
        for t in document.topics:
            self._run_topic(t,ins,outs)

    def _run_topic(self,topic,ins,outs):
        outs.write(topic.title+"\n"
            +"-"*len(topic.title)+"\n\n")
        for q in topic.questions:
            self._run_question(q,ins,outs)
        for t in topic.topics:
            self._run_topic(t,ins,outs)

    def _wait_for_enter(self,ins,outs):
        outs.write("[enter]")
        outs.flush()
        ins.readline()
        outs.write("\n\n")

    def _run_question(self,question,ins,outs):
        outs.write("Q: %s\n\n" % question.text)

        conditions = question.conditions
        if len(conditions) == 0:
            self._wait_for_enter(ins,outs)
            return

        for i,c in enumerate(conditions):
            outs.write("%d) %s\n" % (i+1,c.answer))
        outs.write("\n")

        while True:
            outs.write("> ")
            outs.flush()
            selstring = ins.readline()
            if selstring == "":
                raise RunnerError("Input ended before an answer was chosen "
                    "for %s" % question.id)
            outs.write("\n\n")
            try:
                selnum = int(selstring)
            except ValueError:
                outs.write("Enter a number\n\n")
                continue

            if selnum < 1 or selnum > len(conditions):
                outs.write("Invalid choice\n\n")
                continue

            break

        chosen = conditions[selnum-1]
        log.debug("%s answered %s",question.id,chosen.answer)

        for q in chosen.questions:
            self._run_question(q,ins,outs)


CommandLineRunner.INST = CommandLineRunner()
