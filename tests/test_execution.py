"""Tests for execution response interpretation."""

import pytest

from flowcanvas.core.exceptions import MissingCredentialsError, NodeExecutionError
from flowcanvas.core.execution import (
    ConversationHistory,
    apply_results,
    interpret_execution_response,
    node_result_from_outputs,
)
from flowcanvas.core.notifications import NotificationCenter, NotificationLevel


class TestInterpretExecutionResponse:
    """Test cases for interpret_execution_response."""

    def test_full_success(self):
        """Test a response where every node ran."""
        report = interpret_execution_response(200, {
            "success": True,
            "data": {
                "executed_nodes": ["q", "llm", "r"],
                "response_inputs": {"r": {"final_response": "Hello!"}},
            },
        })

        assert report.success is True
        assert report.node_errors == {}
        assert report.partial is False
        assert report.summary() == "Workflow executed successfully! Executed 3 node(s)"

    def test_partial_success(self):
        """Test that node errors and successful outputs are both kept."""
        report = interpret_execution_response(200, {
            "success": True,
            "data": {
                "executed_nodes": ["q", "llm_a", "r"],
                "skipped_nodes": ["r2"],
                "response_inputs": {"r": {"final_response": "From A"}},
                "errors": {"llm_b": "Rate limit exceeded\nTraceback..."},
            },
        })

        assert report.partial is True
        assert report.response_inputs == {"r": {"final_response": "From A"}}
        assert report.skipped_nodes == ["r2"]
        assert isinstance(report.error, NodeExecutionError)
        assert report.error.node_id == "llm_b"
        assert report.summary() == "Execution Error: Rate limit exceeded (node llm_b)"

    def test_missing_credentials(self):
        """Test the credentials refusal."""
        report = interpret_execution_response(400, {
            "detail": {
                "message": "Missing required credentials for workflow execution",
                "missing_credentials": {"llm_1": ["openai_api_key"], "search_1": "serper_api_key"},
                "node_info": {"llm_1": {"name": "LanguageModelNode"}},
            }
        })

        assert report.success is False
        assert report.missing_credentials == {"llm_1": ["openai_api_key"], "search_1": ["serper_api_key"]}
        assert isinstance(report.error, MissingCredentialsError)
        assert report.error.credential_names == ["openai_api_key", "serper_api_key"]
        assert report.summary() == (
            "2 node(s) require credentials: openai_api_key, serper_api_key. "
            "Please configure them before running the workflow."
        )

    def test_detailed_failure(self):
        """Test a failure whose detail carries node errors and partial outputs."""
        report = interpret_execution_response(500, {
            "detail": {
                "message": "Workflow execution failed",
                "errors": {"llm": "boom"},
                "executed_nodes": ["q"],
                "response_inputs": {},
            }
        })

        assert report.success is False
        assert report.node_errors == {"llm": "boom"}
        assert report.executed_nodes == ["q"]
        assert report.message == "Workflow execution failed"

    @pytest.mark.parametrize("status_code, body, message", [
        (500, {"detail": "Internal Server Error"}, "Internal Server Error"),
        (502, "Bad Gateway", "Bad Gateway"),
        (503, None, "HTTP error! status: 503"),
        (500, {"error": "database down"}, "database down"),
    ])
    def test_generic_failure(self, status_code, body, message):
        """Test failures without structured detail."""
        report = interpret_execution_response(status_code, body)

        assert report.success is False
        assert report.node_errors == {"workflow_error": message}
        assert report.summary() == f"Execution Error: {message} (node workflow_error)"

    def test_success_flag_false(self):
        """Test a 2xx body that reports failure."""
        report = interpret_execution_response(200, {"success": False, "error": "nope"})
        assert report.success is False
        assert report.message == "nope"


class TestResults:
    """Test cases for attaching results to nodes."""

    def test_node_result_shapes(self):
        """Test the canvas payload built from node outputs."""
        assert node_result_from_outputs({"final_response": "Hi"}) == {
            "response": "Hi", "response_content": "Hi"
        }
        assert node_result_from_outputs({"debug_info": {"a": 1}}) == {
            "node_data": {"debug_content": '{\n  "a": 1\n}'}
        }
        assert node_result_from_outputs({"debug_content": "x", "__node_data__": {"y": 1}}) == {
            "node_data": {"debug_content": "x"}
        }
        assert node_result_from_outputs({}) is None
        assert node_result_from_outputs("text") is None

    def test_apply_results(self, store, chain):
        """Test that results land on their nodes and the first answer is previewed."""
        _, llm, response = chain
        report = interpret_execution_response(200, {"data": {"response_inputs": {
            llm.id: {"debug_content": "tokens: 12"},
            response.id: {"final_response": "Hello!"},
            "ghost": {"final_response": "ignored"},
        }}})

        preview = apply_results(store, report)

        assert preview == "Hello!"
        assert response.last_result["response"] == "Hello!"
        assert llm.last_result == {"node_data": {"debug_content": "tokens: 12"}}


class TestConversationAndNotifications:
    """Test cases for chat history and notifications."""

    def test_conversation_history(self):
        """Test starting and continuing a conversation."""
        history = ConversationHistory()
        history.start("Hi", "Hello!")
        history.add_user("And now?")
        history.add_bot("Still here")

        assert [(m.type, m.content) for m in history.messages] == [
            ("user", "Hi"), ("bot", "Hello!"), ("user", "And now?"), ("bot", "Still here")
        ]
        history.start("Reset", "Ok")
        assert len(history.messages) == 2

    def test_notification_center(self):
        """Test notify, the sink and dismissal."""
        seen = []
        center = NotificationCenter(sink=seen.append)
        error = MissingCredentialsError("2 node(s) require credentials")

        note = center.notify_error("Missing Credentials", error)
        center.notify(NotificationLevel.SUCCESS, "Saved")

        assert seen[0] is note
        assert note.error_code == "MissingCredentialsError"
        assert center.dismiss(note.id) is True
        assert center.dismiss(note.id) is False
        assert [n.title for n in center.active] == ["Saved"]
        assert len(center.all) == 2
