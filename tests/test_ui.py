"""Tests for the conversation document and its terminal renderer."""

import asyncio
import io
from unittest.mock import AsyncMock, Mock, patch

import pytest
from rich.console import Console

from kubectl_agent.terminal import TerminalUI
from kubectl_agent.ui import AgentTextBlock, Document, ErrorBlock, FunctionCallRequestBlock, InputOptionBlock


def make_console():
    return Console(file=io.StringIO(), width=100, color_system=None)


class TestDocument:
    """Tests for Document and blocks."""

    def test_listeners_see_additions_and_changes(self):
        doc = Document()
        seen = []
        doc.add_listener(lambda b: seen.append((b, getattr(b, "text", None))))
        block = AgentTextBlock()

        doc.add_block(block)
        block.append_text("hello")

        assert doc.blocks == [block]
        assert block.document is doc
        assert [text for _, text in seen] == ["", "hello"]

    def test_changes_before_adding_are_silent(self):
        block = AgentTextBlock().with_text("x")
        block.set_streaming(True)

        assert block.streaming
        assert block.document is None


class TestInputOptionBlock:
    """Tests for InputOptionBlock."""

    async def test_select(self):
        block = InputOptionBlock("Proceed?", ["1", "2", "3"])

        block.select("2")

        assert block.answered
        assert await block.wait() == "2"

    async def test_cancel(self):
        block = InputOptionBlock("Proceed?", ["1"])

        block.cancel()

        with pytest.raises(EOFError):
            await block.wait()

    async def test_wait_blocks_until_answered(self):
        block = InputOptionBlock("Proceed?", ["1"])
        waiter = asyncio.create_task(block.wait())
        await asyncio.sleep(0)

        assert not waiter.done()
        block.select("1")
        assert await waiter == "1"


class TestTerminalUI:
    """Tests for TerminalUI."""

    def test_text_printed_when_complete(self):
        """Test that streaming text is printed once, after streaming stops."""
        console = make_console()
        doc = Document()
        TerminalUI(doc, console=console, interactive=False)
        block = AgentTextBlock()
        block.set_streaming(True)

        doc.add_block(block)
        block.append_text("All pods are **running**")
        assert console.file.getvalue() == ""

        block.set_streaming(False)
        block.set_streaming(False)

        assert console.file.getvalue().count("All pods are running") == 1

    def test_request_and_error_blocks(self):
        console = make_console()
        doc = Document()
        TerminalUI(doc, console=console, interactive=False)

        doc.add_block(FunctionCallRequestBlock("  Running: kubectl get pods\n"))
        doc.add_block(ErrorBlock("Error running kubectl: boom"))

        output = console.file.getvalue()
        assert "Running: kubectl get pods" in output
        assert "Error running kubectl: boom" in output

    async def test_non_interactive_cancels_questions(self):
        doc = Document()
        TerminalUI(doc, console=make_console(), interactive=False)
        block = InputOptionBlock("Proceed?", ["1", "2", "3"])

        doc.add_block(block)

        with pytest.raises(EOFError):
            await block.wait()

    async def test_interactive_answer(self):
        """Test that the selected option answers the question."""
        doc = Document()
        TerminalUI(doc, console=make_console(), interactive=True)
        question = Mock()
        question.ask_async = AsyncMock(return_value="2")

        with patch("kubectl_agent.terminal.questionary.select", return_value=question) as select:
            block = InputOptionBlock("Proceed?", ["1", "2", "3"])
            doc.add_block(block)
            answer = await block.wait()

        assert answer == "2"
        assert select.call_args.kwargs["choices"] == ["1", "2", "3"]

    async def test_interactive_abort(self):
        """Test that aborting the prompt closes input."""
        doc = Document()
        TerminalUI(doc, console=make_console(), interactive=True)
        question = Mock()
        question.ask_async = AsyncMock(return_value=None)

        with patch("kubectl_agent.terminal.questionary.select", return_value=question):
            block = InputOptionBlock("Proceed?", ["1"])
            doc.add_block(block)

            with pytest.raises(EOFError):
                await block.wait()
