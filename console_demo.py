"""
Offline console demo: runs complete intake and tracking conversations
without any API keys.

Uses the real dispatcher, handlers, tools and in-memory stores, with the
keyword completion service standing in for the hosted model. No network
calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario complaint
    python console_demo.py --scenario tracking
"""

import argparse
import asyncio
import uuid
from typing import Optional

from complaint_agent.config import settings
from complaint_agent.conversation.dispatcher import Dispatcher, TurnOutcome
from complaint_agent.llm.extraction import KeywordCompletionService

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class ConsoleSession:
    """Drives the dispatcher from the terminal."""

    SCENARIOS: dict[str, list[str]] = {
        "complaint": [
            "Hello, I want to file a complaint",
            "My name is Amina Yusuf, email amina.yusuf@example.com",
            "The clerk at the district hospital demanded a bribe before treating my "
            "mother on 3 March 2025 and refused to give a receipt.",
            "skip",
            "yes",
        ],
        "anonymous": [
            "I need to report corruption",
            "I want to stay anonymous",
            "Officials at the road transport licensing office keep delaying licence "
            "renewals for months unless applicants pay extra fees.",
            "no evidence, continue",
            "yes, submit it",
        ],
        "tracking": [
            "I'd like to check the status of my complaint",
        ],
    }

    MAX_INPUT_LENGTH = 2000

    def __init__(self, dispatcher: Optional[Dispatcher] = None) -> None:
        self.dispatcher = dispatcher or Dispatcher.build(completion=KeywordCompletionService())
        self.session_id = str(uuid.uuid4())
        self.last_tracking_number: Optional[str] = None

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.agent.name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  COMPLAINT INTAKE AGENT - {title}{RESET}")
        print(f"{BOLD}  Office: {settings.agent.office_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def send(self, text: str) -> TurnOutcome:
        print(f"\n{BLUE}[Citizen] {RESET}{text}")
        outcome = await self.dispatcher.handle_turn(self.session_id, text)
        self.agent_say(outcome.reply)
        self.system_log(f"State: {outcome.state.value}")
        if outcome.tracking_number:
            self.last_tracking_number = outcome.tracking_number
        return outcome

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        if scenario == "tracking":
            # Something to look up: file a complaint first in its own session.
            await self.run_scenario("complaint")
            self.session_id = str(uuid.uuid4())
            steps = steps + [f"My tracking number is {self.last_tracking_number}"]

        self._banner(f"Scenario: {scenario}")
        for step in steps:
            outcome = await self.send(step)
            if outcome.is_complete:
                break
        print(f"\n{BOLD}  Scenario '{scenario}' complete.{RESET}")

    async def interactive(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        while True:
            user_input = input(f"\n{BLUE}[Citizen] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("That was quite long. Could you keep it a little shorter?")
                continue
            outcome = await self.dispatcher.handle_turn(self.session_id, user_input)
            self.agent_say(outcome.reply)
            self.system_log(f"State: {outcome.state.value}")
            if outcome.is_complete:
                print(f"\n{BOLD}  Conversation complete.{RESET}")
                return

    def run(self, scenario: Optional[str] = None) -> None:
        if scenario:
            asyncio.run(self.run_scenario(scenario))
        else:
            asyncio.run(self.interactive())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Offline complaint agent demo")
    parser.add_argument("--scenario", choices=sorted(ConsoleSession.SCENARIOS))
    args = parser.parse_args()
    ConsoleSession().run(args.scenario)
