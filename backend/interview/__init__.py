# Interview module
from .policy import TimingPolicy, FallbackScoringPolicy
from .state import InterviewStateMachine, resume
from .scoring import SessionScorer
from .controller import InterviewController
