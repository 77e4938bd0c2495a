from src.reactor.models import ChatRole, ContentPart, MessageStatus, ModelState, Thread, ThreadMessage
from src.reactor.state import ConversationState, LatestValue


def test_latest_value_notifies_only_on_change():
    cell = LatestValue(0)
    seen = []
    unobserve = cell.observe(seen.append)

    cell.set(1)
    cell.set(1)
    unobserve()
    cell.set(2)

    assert seen == [0, 1]
    assert cell.get() == 2


def test_update_message_never_reverses_terminal_status():
    state = ConversationState()
    state.add_new_message(ThreadMessage(id="m1", thread_id="t1", role=ChatRole.ASSISTANT))

    state.update_message("m1", "t1", [ContentPart(text="done")], MessageStatus.READY)
    state.update_message("m1", "t1", [ContentPart(text="again")], MessageStatus.PENDING)
    state.update_message("m1", "t1", [ContentPart(text="oops")], MessageStatus.ERROR)

    (message,) = state.get_thread_messages("t1")
    assert message.status is MessageStatus.READY
    assert message.text == "done"


def test_finished_message_content_is_frozen():
    state = ConversationState()
    state.add_new_message(ThreadMessage(id="m1", thread_id="t1", role=ChatRole.ASSISTANT))

    assert state.update_message("m1", "t1", [ContentPart(text="final")], MessageStatus.READY) is True
    assert state.update_message("m1", "t1", [ContentPart(text="rewritten")], MessageStatus.READY) is False
    assert state.update_message("m2", "t1", [ContentPart(text="other")], MessageStatus.READY) is False

    (message,) = state.get_thread_messages("t1")
    assert message.text == "final"


def test_waiting_flags_are_scoped_per_thread():
    state = ConversationState()
    state.update_thread_waiting("t1", True)
    state.update_thread_waiting("t2", True)

    state.update_thread_waiting("t1", False)

    assert state.is_thread_waiting("t1") is False
    assert state.is_thread_waiting("t2") is True


def test_thread_updates_and_removal():
    state = ConversationState()
    state.add_thread(Thread(id="t1"))
    state.add_thread(Thread(id="t2"))
    state.set_current_thread("t1")
    state.add_new_message(ThreadMessage(id="m1", thread_id="t1", role=ChatRole.USER))

    state.update_thread(Thread(id="t1", title="Renamed"))
    state.update_thread(Thread(id="missing", title="Ignored"))
    assert state.get_thread("t1").title == "Renamed"
    assert state.get_thread("missing") is None
    assert [message.id for message in state.current_messages()] == ["m1"]

    state.remove_thread("t1")
    assert [thread.id for thread in state.threads.get()] == ["t2"]
    assert state.current_thread_id.get() is None
    assert state.get_thread_messages("t1") == []


def test_mark_model_loading_clears_previous_error():
    state = ConversationState()
    state.set_load_model_error("out of memory")

    state.mark_model_loading("llama")

    status = state.model_load_status.get()
    assert (status.state, status.loading, status.model) == (ModelState.LOADING, True, "llama")
    assert state.load_model_error.get() is None
