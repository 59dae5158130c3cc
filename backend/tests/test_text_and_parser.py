import random

from conftest import VALID_BLOCK, make_block
from quizcraft.utils.question_parser import (
    extract_correct_answer,
    extract_options,
    parse_question_block,
)
from quizcraft.utils.text import normalize_whitespace, sanitize_text, split_into_blocks, word_count


def test_sanitize_strips_tags_and_collapses_whitespace():
    assert sanitize_text('<b>Hello</b>   \n world') == 'Hello world'


def test_sanitize_maps_quotes_and_dashes():
    raw = '\u201cQuoted\u201d \u2018text\u2019 \u2013 dash \u2014 end'
    assert sanitize_text(raw) == '"Quoted" \'text\' - dash - end'


def test_sanitize_periods_and_punctuation_spacing():
    assert sanitize_text('Wait...what') == 'Wait. what'
    assert sanitize_text('one,two') == 'one, two'


def test_sanitize_removes_control_characters():
    assert sanitize_text('bell\x07 here\x00') == 'bell here'


def test_sanitize_is_idempotent():
    samples = [
        '<p>Some  text...and more,stuff</p>',
        '\u201cA\u201d\t\x01 b\u2014c!d',
        '  ..leading periods',
        '',
    ]
    alphabet = ['<b>', '</p>', '<', '>', '.', '..', ',', '!', '?', ';', ':', ' ', '  ', '\t', '\n', '\x00', '\x07',
                '\x1f', '\u201c', '\u201d', '\u2018', '\u2019', '\u2013', '\u2014', 'a', 'B', 'z', '7', 'word']
    rng = random.Random(1234)
    samples += [''.join(rng.choice(alphabet) for _ in range(rng.randint(1, 30))) for _ in range(2000)]
    for s in samples:
        once = sanitize_text(s)
        assert sanitize_text(once) == once, repr(s)


def test_split_keeps_preamble_and_numbered_blocks():
    text = 'Here are your questions:\n' + make_block(1) + '\n' + make_block(2)
    blocks = split_into_blocks(text)
    assert len(blocks) == 3
    assert blocks[0] == 'Here are your questions:'
    assert blocks[1].startswith('1.')
    assert blocks[2].startswith('2.')


def test_split_on_question_marker():
    text = 'Question: first one here?\nA) a\n\nquestion: second one here?\nA) b'
    assert len(split_into_blocks(text)) == 2


def test_split_empty():
    assert split_into_blocks('') == []
    assert split_into_blocks('   \n ') == []


def test_whitespace_helpers():
    assert normalize_whitespace('  a \n\n b\t c ') == 'a b c'
    assert word_count('one two  three') == 3
    assert word_count('') == 0


def test_parse_numbered_block():
    result = parse_question_block(VALID_BLOCK, complexity='lite')
    assert result.ok
    q = result.question
    assert q.text == 'What is the powerhouse of the cell in eukaryotes?'
    assert q.options == ['Nucleus', 'Mitochondria', 'Ribosome', 'Golgi apparatus']
    assert q.correct_answer == 1
    assert q.explanation.startswith('Mitochondria produce')
    assert q.complexity == 'lite'
    assert len(q.id) == 32


def test_parse_inline_options_and_plain_answer():
    block = (
        'Question: Which gas do plants absorb from the air? '
        'Options: A) Oxygen B) Carbon dioxide C) Nitrogen D) Helium\n'
        'Answer: B\n'
        'Explanation: Plants take in carbon dioxide for photosynthesis.'
    )
    result = parse_question_block(block)
    assert result.ok
    assert result.question.text == 'Which gas do plants absorb from the air?'
    assert result.question.options == ['Oxygen', 'Carbon dioxide', 'Nitrogen', 'Helium']
    assert result.question.correct_answer == 1


def test_correct_answer_digit_and_letter_forms():
    assert extract_correct_answer('Correct Answer: 2') == 2
    assert extract_correct_answer('Correct answer (d)') == 3
    assert extract_correct_answer('Answer: a') == 0
    assert extract_correct_answer('no answer given') is None


def test_options_need_all_four_labels():
    assert extract_options('A) one\nB) two\nC) three') is None


def test_parse_failures_name_the_stage():
    no_options = '1. A question without any options at all?\nCorrect Answer: A\nExplanation: Nothing to pick from here.'
    result = parse_question_block(no_options)
    assert not result.ok
    assert result.error.startswith('options:')

    no_answer = VALID_BLOCK.replace('Correct Answer: B\n', '')
    assert parse_question_block(no_answer).error.startswith('correct answer:')

    no_explanation = VALID_BLOCK.split('Explanation:')[0]
    assert parse_question_block(no_explanation).error.startswith('explanation:')

    assert parse_question_block('   ').error.startswith('question:')


def test_to_dict_shape():
    q = parse_question_block(VALID_BLOCK).question
    d = q.to_dict()
    assert set(d) == {
        'id', 'text', 'options', 'correct_answer', 'explanation',
        'complexity', 'generated_at', 'generation_seconds',
    }


def test_option_label_does_not_borrow_the_next_line():
    assert extract_options('A)\nB) x\nC) y\nD) z') is None
    assert extract_options('  A) one\n\tB) two\nC) three\n(D) four') == ['one', 'two', 'three', 'four']
