"""Integration tests for the full generation pipeline."""

import asyncio

import pytest

from dslgen.config.defaults import FAST_MODEL, PREMIUM_MODEL, STANDARD_MODEL, STARTER_TEMPLATE_PROMPT
from dslgen.exceptions import GenerationError, ProviderError
from dslgen.pipeline.request import GenerationOptions, GenerationRequest
from dslgen.pipeline.runner import CodeGenerationPipeline, PipelineComponents
from dslgen.pipeline.trace import TraceLogger
from dslgen.storage.database import session_scope
from dslgen.storage.models import Generation, UsageEvent
from fakes import DIALECT, CompilerService, FakeProvider, call

SUCCESS = {"status": "success", "data": {}}
SYNTAX_ERROR = {"status": "error", "error": {"message": "Unexpected token at line 1"}}
SEMANTIC_ERROR = {"status": "error", "error": {"message": "Unknown function 'sumall'"}}

REPAIR_SPEC = {
    "version": "2",
    "spec_id": "repair-1",
    "system_instructions": "You repair L0002 code.",
    "user_template": "Fix: {user_request}",
}


def build_pipeline(config, provider, service, session_factory):
    components = PipelineComponents(
        config,
        provider=provider,
        session_factory=session_factory,
        transport=service.transport,
        trace=TraceLogger(keep_records=True),
    )
    return CodeGenerationPipeline(config, components)


def make_request(prompt="Add two numbers", **kwargs):
    kwargs.setdefault("auth_token", "token-123")
    kwargs.setdefault("account_id", "acct")
    return GenerationRequest(user_prompt=prompt, dialect=DIALECT, **kwargs)


def saved_generation(session_factory, request_id):
    with session_scope(session_factory) as session:
        return session.get(Generation, request_id)


def usage_events(session_factory):
    with session_scope(session_factory) as session:
        return session.query(UsageEvent).all()


class TestGenerateCode:
    """Tests for the happy path and the repair loop."""

    def test_first_attempt_success(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        service = CompilerService(results=[SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)
        request = make_request(plan="pro")

        response = asyncio.run(pipeline.generate_code(request))

        assert response.code == "add 1 2.."
        assert response.status == "success"
        assert response.fix_attempts == 0
        assert response.models_used == [STANDARD_MODEL]
        assert response.usage.input_tokens == 10
        assert response.usage.output_tokens == 5
        assert response.usage_record.billed_units == 1
        assert response.request_id == request.request_id
        assert service.submitted == [{"lang": DIALECT, "code": "add 1 2.."}]

        stages = pipeline.trace.stages(request.request_id)
        assert stages[0] == "pipeline.start"
        assert stages[-1] == "pipeline.complete"
        assert "retrieval.result" in stages
        assert "verification.complete" in stages
        assert "usage.recorded" in stages

    def test_retrieved_examples_in_prompt(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        asyncio.run(pipeline.generate_code(make_request("Create a table with a title")))

        messages = provider.calls[0]["messages"]
        assert messages[0] == {"role": "user", "content": "Create a table with a title"}
        assert messages[-1]["content"].startswith("<USER_REQUEST>\nCreate a table with a title")
        assert "L0002" in provider.calls[0]["system"]

    def test_repeated_failures_exhaust_repairs(self, pipeline_config, session_factory):
        provider = FakeProvider(
            [
                call("```\nadd 1..\n```"),
                call("```\nadd 1 2 3..\n```"),
                call("```\nadd 1 2 3 4..\n```"),
            ]
        )
        service = CompilerService(results=[SYNTAX_ERROR])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)
        request = make_request()

        response = asyncio.run(pipeline.generate_code(request))

        assert response.status == "error"
        assert response.fix_attempts == 2
        assert response.code == "add 1 2 3 4.."
        assert response.models_used == [STANDARD_MODEL, PREMIUM_MODEL, PREMIUM_MODEL]
        assert response.usage.input_tokens == 30
        assert response.verification.errors[0].kind == "syntax"
        assert len(provider.calls) == 3
        assert "repair.exhausted" in pipeline.trace.stages(request.request_id)

        repair_call = provider.calls[1]
        assert "fixing code errors" in repair_call["system"]
        assert "add 1.." in repair_call["messages"][-1]["content"]
        assert "Unexpected token at line 1" in repair_call["messages"][-1]["content"]
        assert repair_call["options"].temperature == 0.1

        assert usage_events(session_factory)[0].fix_attempts == 2

    def test_escalates_to_premium_on_failure(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1..\n```"), call("```\nadd 1 2..\n```")])
        service = CompilerService(results=[SYNTAX_ERROR, SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request()))

        assert response.status == "success"
        assert response.fix_attempts == 1
        assert provider.models == [STANDARD_MODEL, PREMIUM_MODEL]
        assert response.model == PREMIUM_MODEL

    def test_premium_first_attempt_stays_premium(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1..\n```"), call("```\nadd 1 2..\n```")])
        service = CompilerService(results=[SYNTAX_ERROR, SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        asyncio.run(pipeline.generate_code(make_request(options=GenerationOptions(model=PREMIUM_MODEL))))

        assert provider.models == [PREMIUM_MODEL, PREMIUM_MODEL]

    def test_request_options_override_config(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        asyncio.run(
            pipeline.generate_code(make_request(options=GenerationOptions(temperature=0.7, max_tokens=256)))
        )

        options = provider.calls[0]["options"]
        assert options.temperature == 0.7
        assert options.max_tokens == 256

    def test_without_token_is_unverified(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        service = CompilerService()
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request(auth_token=None)))

        assert response.status == "unverified"
        assert response.verification is None
        assert response.fix_attempts == 0
        assert service.paths("compiler.test") == []

    def test_truncated_output_is_continued(self, pipeline_config, session_factory):
        provider = FakeProvider(
            [call("```\nlet x = 1", stop_reason="max_tokens"), call("..\nadd x 2..\n```")]
        )
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        response = asyncio.run(pipeline.generate_code(make_request()))

        assert response.code == "let x = 1..\nadd x 2.."
        assert response.models_used == [STANDARD_MODEL]
        assert response.usage.output_tokens == 10


class TestSemanticRepair:
    """Tests for spec-compiler repair prompts."""

    def test_semantic_errors_use_spec_compiler(self, make_config, session_factory):
        config = make_config(enable_spec_compiler=True)
        provider = FakeProvider([call("```\nsumall [1 2]..\n```"), call("```\nsum [1 2]..\n```")])
        service = CompilerService(
            results=[SEMANTIC_ERROR, SUCCESS],
            spec_responses={"/compile-repair-prompt-spec": {"success": True, "data": REPAIR_SPEC}},
        )
        pipeline = build_pipeline(config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request("Sum a list")))

        assert response.status == "success"
        # Codegen spec is not served, so the first attempt used the local prompt
        assert service.paths("spec-compiler.test") == ["/compile-prompt-spec", "/compile-repair-prompt-spec"]
        assert provider.calls[1]["system"] == "You repair L0002 code."
        assert provider.calls[1]["messages"] == [{"role": "user", "content": "Fix: Sum a list"}]

    def test_mechanical_errors_skip_spec_compiler(self, make_config, session_factory):
        config = make_config(enable_spec_compiler=True)
        provider = FakeProvider([call("```\nadd 1..\n```"), call("```\nadd 1 2..\n```")])
        service = CompilerService(
            results=[SYNTAX_ERROR, SUCCESS],
            spec_responses={"/compile-repair-prompt-spec": {"success": True, "data": REPAIR_SPEC}},
        )
        pipeline = build_pipeline(config, provider, service, session_factory)

        asyncio.run(pipeline.generate_code(make_request()))

        assert "/compile-repair-prompt-spec" not in service.paths("spec-compiler.test")
        assert "fixing code errors" in provider.calls[1]["system"]

    def test_spec_compiler_failure_falls_back_to_local_repair(self, make_config, session_factory):
        config = make_config(enable_spec_compiler=True)
        provider = FakeProvider([call("```\nsumall [1 2]..\n```"), call("```\nsum [1 2]..\n```")])
        service = CompilerService(results=[SEMANTIC_ERROR, SUCCESS])
        pipeline = build_pipeline(config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request("Sum a list")))

        assert response.status == "success"
        assert "fixing code errors" in provider.calls[1]["system"]


class TestFailures:
    """Tests for transport failures."""

    def test_no_output_raises(self, pipeline_config, session_factory):
        provider = FakeProvider([ProviderError("HTTP 529: overloaded", status_code=529)])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)
        request = make_request()

        with pytest.raises(GenerationError) as excinfo:
            asyncio.run(pipeline.generate_code(request))

        assert excinfo.value.request_id == request.request_id
        assert "529" in str(excinfo.value)
        assert usage_events(session_factory) == []
        assert saved_generation(session_factory, request.request_id).status == "error"
        assert pipeline.trace.stages(request.request_id)[-1] == "pipeline.error"

    def test_failure_during_repair_keeps_previous_code(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1..\n```"), ProviderError("connection reset")])
        service = CompilerService(results=[SYNTAX_ERROR])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)
        request = make_request()

        response = asyncio.run(pipeline.generate_code(request))

        assert response.code == "add 1.."
        assert response.status == "error"
        assert response.verification.status == "error"
        assert "connection reset" in response.error
        # The failed repair call still counts as an attempt
        assert response.fix_attempts == 1
        assert response.models_used == [STANDARD_MODEL, PREMIUM_MODEL]
        attempts = [r for r in pipeline.trace.records if r["stage"] == "repair.attempt"]
        assert [a["status"] for a in attempts] == ["error", "transport_error"]

    def test_partial_first_attempt_without_token(self, pipeline_config, session_factory):
        provider = FakeProvider([call("add 1 2", stop_reason="max_tokens"), ProviderError("stream dropped")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        response = asyncio.run(pipeline.generate_code(make_request(auth_token=None)))

        assert response.code == "add 1 2"
        assert response.status == "unverified"
        assert "stream dropped" in response.error
        assert response.to_dict()["error"] == response.error
        assert response.models_used == [STANDARD_MODEL]

    def test_partial_first_attempt_is_verified(self, pipeline_config, session_factory):
        provider = FakeProvider([call("add 1 2..", stop_reason="max_tokens"), ProviderError("stream dropped")])
        service = CompilerService(results=[SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)
        request = make_request()

        response = asyncio.run(pipeline.generate_code(request))

        assert service.submitted == [{"lang": DIALECT, "code": "add 1 2.."}]
        assert response.status == "success"
        assert "stream dropped" in response.error
        assert response.usage_record is not None
        assert "generation.partial" in pipeline.trace.stages(request.request_id)
        assert saved_generation(session_factory, request.request_id).error_message == response.error

    def test_partial_first_attempt_is_repaired(self, pipeline_config, session_factory):
        provider = FakeProvider(
            [
                call("let x = add 1", stop_reason="max_tokens"),
                ProviderError("stream dropped"),
                call("```\nlet x = add 1 2..\nx..\n```"),
            ]
        )
        service = CompilerService(results=[SYNTAX_ERROR, SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request()))

        assert [task["code"] for task in service.submitted] == ["let x = add 1", "let x = add 1 2..\nx.."]
        assert "let x = add 1" in provider.calls[2]["messages"][-1]["content"]
        assert response.status == "success"
        assert response.fix_attempts == 1
        assert response.models_used == [STANDARD_MODEL, PREMIUM_MODEL]
        assert response.error is None

    def test_start_trace_record(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)
        request = make_request()

        asyncio.run(pipeline.generate_code(request))

        start = pipeline.trace.records[0]
        assert start["stage"] == "pipeline.start"
        assert start["request_id"] == request.request_id
        assert start["user_prompt"] == "Add two numbers"
        assert start["dialect"] == DIALECT
        assert "token-123" not in str(start)

    def test_placeholder_text_in_request_kept(self, pipeline_config, session_factory):
        provider = FakeProvider([call('```\ntitle "{dialect}"..\n```')])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)
        request = make_request('Show the text {dialect} in a title', current_code='text "{user_request}"..')

        asyncio.run(pipeline.generate_code(request))

        user_message = provider.calls[0]["messages"][-1]["content"]
        assert "Show the text {dialect} in a title" in user_message
        assert 'text "{user_request}"..' in user_message

    def test_placeholder_text_in_failing_code_kept(self, pipeline_config, session_factory):
        provider = FakeProvider([call('```\ntitle "{dialect}"..\n```'), call('```\ntitle "Sales"..\n```')])
        service = CompilerService(results=[SYNTAX_ERROR, SUCCESS])
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        asyncio.run(pipeline.generate_code(make_request()))

        repair_message = provider.calls[1]["messages"][-1]["content"]
        assert 'title "{dialect}"..' in repair_message
        assert "Unexpected token at line 1" in repair_message


class TestExtras:
    """Tests for the starter template, descriptions and records."""

    def test_starter_template(self, pipeline_config, session_factory):
        provider = FakeProvider()
        service = CompilerService(template='title "Start"..\n')
        pipeline = build_pipeline(pipeline_config, provider, service, session_factory)

        response = asyncio.run(pipeline.generate_code(make_request(STARTER_TEMPLATE_PROMPT)))

        assert response.status == "template"
        assert response.code == 'title "Start"..\n'
        assert response.usage.total_tokens == 0
        assert provider.calls == []
        assert usage_events(session_factory) == []

    def test_missing_template_generates(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\ntitle \"Start\"..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        response = asyncio.run(pipeline.generate_code(make_request(STARTER_TEMPLATE_PROMPT)))

        assert response.status == "success"
        assert len(provider.calls) == 1

    def test_describe_code(self, make_config, session_factory):
        config = make_config(describe_code=True)
        provider = FakeProvider([call("```\nadd 1 2..\n```"), call("Adds one and two.")])
        pipeline = build_pipeline(config, provider, CompilerService(), session_factory)

        response = asyncio.run(pipeline.generate_code(make_request()))

        assert response.description == "Adds one and two."
        assert provider.models == [STANDARD_MODEL, FAST_MODEL]
        assert response.models_used == [STANDARD_MODEL]
        assert response.usage.input_tokens == 20
        assert "add 1 2.." in provider.calls[1]["messages"][0]["content"]

    def test_generation_row_saved(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)
        request = make_request()

        asyncio.run(pipeline.generate_code(request))

        row = saved_generation(session_factory, request.request_id)
        assert row.status == "success"
        assert row.dialect == DIALECT
        assert row.account_id == "acct"
        assert row.code_length == len("add 1 2..")
        assert row.input_tokens == 10

    def test_analytics_disabled_saves_nothing(self, make_config, session_factory):
        config = make_config(enable_analytics=False)
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(config, provider, CompilerService(), session_factory)
        request = make_request()

        asyncio.run(pipeline.generate_code(request))

        assert saved_generation(session_factory, request.request_id) is None

    def test_check_health(self, make_config, session_factory):
        disabled = build_pipeline(make_config(), FakeProvider(), CompilerService(), session_factory)
        enabled = build_pipeline(
            make_config(enable_spec_compiler=True), FakeProvider(), CompilerService(), session_factory
        )

        assert asyncio.run(disabled.check_health()) == {"spec_compiler": None}
        assert asyncio.run(enabled.check_health()) == {"spec_compiler": True}

    def test_response_dict(self, pipeline_config, session_factory):
        provider = FakeProvider([call("```\nadd 1 2..\n```")])
        pipeline = build_pipeline(pipeline_config, provider, CompilerService(), session_factory)

        data = asyncio.run(pipeline.generate_code(make_request())).to_dict()

        assert data["status"] == "success"
        assert data["usage_record"]["account_id"] == "acct"
        assert "token-123" not in str(data)
