# grader.py
"""
Functions for loading answer keys and grading extracted answers.
"""
import logging
from dataclasses import replace

import pandas as pd

from . import config
from .models import GradeSummary, QuestionStatus

logger = logging.getLogger(__name__)

BLANK_KEY_CHARS = '-_.? '


def load_master_answers(path, choice_labels=config.CHOICE_LABELS):
    """Loads the master answer key from a CSV file of (question, answer) rows."""
    try:
        df = pd.read_csv(path)
    except FileNotFoundError:
        raise FileNotFoundError(f"Master answer file not found at {path}")

    if df.shape[1] < 2:
        raise ValueError(f"Master answer file {path} needs a question and an answer column")
    df = df.iloc[:, :2]
    # Standardize column names for easier access
    df.columns = ['question', 'answer']
    df = df.dropna().copy()
    df['answer'] = df['answer'].astype(str).str.strip().str.upper()

    invalid = df[~df['answer'].isin(choice_labels)]
    if not invalid.empty:
        raise ValueError(
            f"Master answer file {path} has invalid answers for questions "
            f"{invalid['question'].astype(int).tolist()}"
        )
    key = {int(q): a for q, a in zip(df['question'], df['answer'])}
    logger.info("Loaded %d master answers from %s", len(key), path)
    return key


def parse_answer_key(text, choice_labels=config.CHOICE_LABELS):
    """
    Parses the compact key form, one character per question from question 1.

    Blank markers ('-', '_', '.', '?', space) leave a question out of the key.
    """
    key = {}
    for index, char in enumerate(text.strip(), start=1):
        if char in BLANK_KEY_CHARS:
            continue
        answer = char.upper()
        if answer not in choice_labels:
            raise ValueError(f"Invalid answer {char!r} for question {index} in answer key")
        key[index] = answer
    return key


def format_answer_key(key, total_questions=config.TOTAL_QUESTIONS):
    """Inverse of parse_answer_key; questions missing from the key become '-'."""
    return ''.join(key.get(n, '-') for n in range(1, total_questions + 1))


def grade_answers(questions, master_answers):
    """
    Compares answered questions to the master key and calculates the score.

    Every Answered question that has a key entry is relabeled Correct or
    Incorrect. Questions with multiple marks are never graded as correct,
    whatever the tie-break policy reported as their answer.

    Returns the relabeled questions and a GradeSummary.
    """
    graded = {}
    correct = incorrect = unanswered = invalid = 0
    for number, question in questions.items():
        key_answer = master_answers.get(number)
        if key_answer is None:
            graded[number] = question
            continue

        if question.status is QuestionStatus.ANSWERED:
            is_correct = question.answer == str(key_answer).strip().upper()
            status = QuestionStatus.CORRECT if is_correct else QuestionStatus.INCORRECT
            correct += is_correct
            incorrect += not is_correct
            graded[number] = replace(question, status=status, correct_answer=key_answer)
        else:
            if question.status is QuestionStatus.SKIPPED:
                unanswered += 1
            else:
                invalid += 1
            graded[number] = replace(question, correct_answer=key_answer)

    total = len(master_answers)
    unanswered += sum(1 for n in master_answers if n not in questions)
    percent = (100.0 * correct / total) if total else 0.0
    summary = GradeSummary(
        total=total, correct=correct, incorrect=incorrect,
        unanswered=unanswered, invalid=invalid, percentage=percent,
    )
    logger.info("Grading complete. Score: %d/%d (%.2f%%)", correct, total, percent)
    return graded, summary
